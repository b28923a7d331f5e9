"""Services package: blob storage, the job queue, transaction and merchant category stores, and categorization."""
