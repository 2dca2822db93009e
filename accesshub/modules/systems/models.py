# Registry tables: systems, functions
# This file documents the expected database schema (see database/schema.sql)
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

systems:
- id: varchar (primary key) - stable slug, e.g. "nup-kan"
- name: text (not null)
- description: text (default: '')
- api_url: text (default: '')
- is_active: boolean (default: true)
- created_at / updated_at: timestamp

functions:
- id: varchar (primary key) - "<system_id>:<function_key>", derived, never assigned
- system_id: varchar (foreign key to systems.id, on delete cascade)
- function_key: text (not null) - unique within a system
- name: text (not null) - display name
- category: text (default: '')
- description: text (default: '')
- endpoint: text (default: '') - e.g. "POST /api/boards"
- created_at / updated_at: timestamp
- unique constraint on (system_id, function_key)

Systems are created by manual registration or implicitly by the first sync.
Sync never deletes functions; stale ones are only reported.
"""
