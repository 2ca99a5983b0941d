"""Data store client."""

from .supabase import SupabaseStore, VoteRecord, TABLES
