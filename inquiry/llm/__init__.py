"""Client for the hosted chat-completion / image endpoint."""
