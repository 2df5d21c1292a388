"""In-process lifecycle events and the handlers that react to them."""
