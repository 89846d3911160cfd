"""Services backing the Warden bot."""
