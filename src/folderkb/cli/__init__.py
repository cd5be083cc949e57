"""folderkb command line interface."""
