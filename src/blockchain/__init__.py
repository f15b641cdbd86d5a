"""Chain-facing pieces: local dev chain, clients, compiler and deployer."""
