# gibber/core/__init__.py
"""
Core server modules.
Contains essential infrastructure components:
- bootstrap: Logging setup and startup banner
- channel: Line-oriented read/write wrapper around a client stream
- db: Database configuration and connection management
- errors: Error taxonomy shared by stores, workflows and sessions
- security: Password hashing and verification
- validation: Email and password input rules
"""
