"""
Protocols API - clinical trial protocol and form management backend.

This package provides:
- Protocols with ordered visits and dynamically-typed activities (form fields)
- Reusable templates merged into visits without duplicating field names
- Optimistically-versioned protocol documents with retry on write conflicts
- JWT authentication with role-based access
- AI-assisted clinical history generation (text preview and PDF)
"""

__version__ = "1.0.0"
