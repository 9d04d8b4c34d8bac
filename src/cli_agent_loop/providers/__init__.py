"""Provider adapters for the supported coding-agent CLIs."""
