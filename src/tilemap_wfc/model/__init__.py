"""Pattern learning, the WFC algorithm and the file formats of samples, tilemaps and states."""
