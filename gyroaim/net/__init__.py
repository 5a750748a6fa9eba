"""UDP transport: wire codec, sender, receiver and discovery."""
