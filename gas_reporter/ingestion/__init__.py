"""External collaborators: JSON-RPC client, instrumented provider, artifact loading."""
