"""HTTP control API for the wallet bridge."""
