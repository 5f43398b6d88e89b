"""Authority-facing protocol layer: transport, nonces, directory, signing."""
