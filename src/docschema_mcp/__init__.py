"""Schema inference and document normalization for schemaless document stores."""
