"""JSON-RPC access to Ethereum nodes (transaction lookup and ``trace_call``)."""
