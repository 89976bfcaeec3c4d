"""Chain access: RPC client, block clock and router venue."""
