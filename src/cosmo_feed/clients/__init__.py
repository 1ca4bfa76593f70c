"""Network clients: the token stream transport and the metadata lookup client."""
