"""Sandbox configuration: validated types, errors, and TOML loading and merging."""