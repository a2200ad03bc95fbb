"""Command line front end for nupm."""
