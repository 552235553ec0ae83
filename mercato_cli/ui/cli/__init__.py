"""Click command groups registered on the ``mercato`` entrypoint."""
