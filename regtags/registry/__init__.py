"""Docker Registry V2 API access: references, credentials, manifests."""
