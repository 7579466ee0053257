"""Application layer: contracts the authentication core depends on."""
