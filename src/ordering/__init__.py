"""Order lifecycle engine for the B2B catalog back-office."""
