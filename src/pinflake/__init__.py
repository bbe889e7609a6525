"""pin-flake-inputs - pin flake.nix inputs to the revisions in flake.lock."""
