"""Generation service back ends."""
