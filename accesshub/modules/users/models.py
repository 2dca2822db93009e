# Registry table: users
# This file documents the expected database schema (see database/schema.sql)
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

users:
- id: uuid (primary key)
- email: text (unique, not null) - stored lower-cased
- name: text (not null)
- password_hash: text (nullable) - pbkdf2_sha256$<iterations>$<salt>$<hex>
- is_active: boolean (default: true) - inactive users fail token validation
- is_super_user: boolean (default: false) - admin-equivalent; may sync functions
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

Client systems keep a read-only mirror of this table for presentation only.
"""
