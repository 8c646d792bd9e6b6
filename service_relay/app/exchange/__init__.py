"""On-Behalf-Of token exchange: endpoint client, cache and exchanger."""
