"""Command-line front end for heightforge."""
