"""sessionkeeper command line interface."""
