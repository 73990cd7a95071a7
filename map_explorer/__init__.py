"""
Explored-area engine for the fog-of-war map explorer.
"""
