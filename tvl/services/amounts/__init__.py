"""Raw amount resolution per asset position."""
