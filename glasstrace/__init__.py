"""Glasstrace: session and station-credential core for the shop-floor scanning terminal."""
