"""Postgres schema for the Supabase share store.

Apply ``SHARES_SCHEMA_SQL`` once per project (SQL editor or migration).
The storage bucket named by ``STORAGE_BUCKET`` must exist and be private.
"""

SHARES_SCHEMA_SQL = """
create table if not exists public.shares (
    id              text primary key,
    content_type    text not null check (content_type in ('text', 'file')),
    text_content    text,
    file_key        text,
    file_checksum   text,
    original_name   text,
    mime_type       text,
    file_size       bigint,
    expires_at      timestamptz not null,
    password_digest text,
    one_time_view   boolean not null default false,
    max_views       integer check (max_views is null or max_views >= 1),
    current_views   integer not null default 0,
    created_at      timestamptz not null default now(),
    constraint shares_one_content check (
        (content_type = 'text' and text_content is not null and file_key is null)
        or (content_type = 'file' and file_key is not null and text_content is null)
    )
);

create index if not exists shares_expires_at_idx on public.shares (expires_at);

alter table public.shares enable row level security;

create or replace function public.increment_share_views(share_id text)
returns integer
language sql
as $$
    update public.shares
       set current_views = current_views + 1
     where id = share_id
 returning current_views;
$$;
"""
