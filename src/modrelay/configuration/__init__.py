"""
Configuration management for Modrelay.

- **app_configuration.py**: File-locked YAML loader for global settings
  (database location, case id widths, admin list, hashing parameters).
  Falls back to defaults on missing or malformed config files.

- **case_id_settings.py**: Typed accessor for the ``case_ids`` section.

- **identity_settings.py**: The explicitly constructed identity hashing
  configuration, holding the secret salt read from the environment.
"""
