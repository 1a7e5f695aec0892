"""Text rendering of generated tilemaps."""
