"""Try-on services: submission, polling, results, orchestration."""
