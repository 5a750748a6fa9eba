"""Consumer-side control plane."""
