"""Workers package: the job runner that drains the extraction queue."""
