# Registry tables: profiles, profile_functions, user_profiles, user_function_overrides
# This file documents the expected database schema (see database/schema.sql)
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

profiles:
- id: uuid (primary key)
- name: text (not null, unique) - e.g. "Global Administrator"
- description: text (default: '')
- system_id: varchar (nullable, foreign key to systems.id, on delete cascade) - null = global
- created_at / updated_at: timestamp

profile_functions:
- id: uuid (primary key)
- profile_id: uuid (foreign key to profiles.id, on delete cascade)
- function_id: varchar (foreign key to functions.id, on delete cascade)
- granted: boolean (default: true) - rows with false are stored but ignored;
  profiles only ever add capabilities
- unique constraint on (profile_id, function_id)

user_profiles:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, on delete cascade)
- profile_id: uuid (foreign key to profiles.id, on delete cascade)
- unique constraint on (user_id, profile_id)

user_function_overrides:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, on delete cascade)
- function_id: varchar (foreign key to functions.id, on delete cascade)
- granted: boolean (not null) - true adds, false revokes, whatever profiles say
- reason: text (default: '')
- unique constraint on (user_id, function_id)
"""
