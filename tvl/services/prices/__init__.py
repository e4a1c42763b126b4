"""USD price and circulating supply provider clients."""
