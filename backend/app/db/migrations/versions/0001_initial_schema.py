"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("create extension if not exists pgcrypto")

    op.execute("create type user_role as enum ('ADMIN','EDITOR','VIEWER')")
    op.execute("create type wiki_node_type as enum ('folder','file')")
    op.execute("create type wiki_permission_action as enum ('DETECTED','RESOLVED')")
    op.execute("create type permission_kind as enum ('department','rank','position')")
    op.execute("create type dismissed_permission_log_type as enum ('wiki')")

    op.execute(
        """
        create table users (
          id uuid primary key default gen_random_uuid(),
          username varchar(64) not null unique,
          password_hash text not null,
          role user_role not null default 'VIEWER',
          is_active boolean not null default true,
          last_login_at timestamptz,
          created_at timestamptz not null default now(),
          updated_at timestamptz not null default now()
        )
        """
    )

    op.execute(
        """
        create table wiki_file_systems (
          id uuid primary key default gen_random_uuid(),
          name varchar(500) not null,
          type wiki_node_type not null,
          parent_id uuid references wiki_file_systems(id),
          depth int not null default 0,
          "order" int not null default 0,
          title varchar(500),
          content text,
          attachments jsonb,
          is_public boolean not null default true,
          permission_rank_ids jsonb,
          permission_position_ids jsonb,
          permission_department_ids jsonb,
          created_by uuid references users(id),
          updated_by uuid references users(id),
          created_at timestamptz not null default now(),
          updated_at timestamptz not null default now(),
          deleted_at timestamptz,
          constraint ck_wiki_file_systems_depth check (depth >= 0)
        )
        """
    )
    op.execute("create index idx_wiki_file_system_parent_id on wiki_file_systems(parent_id)")
    op.execute("create index idx_wiki_file_system_type on wiki_file_systems(type)")
    op.execute("create index idx_wiki_file_system_depth on wiki_file_systems(depth)")

    op.execute(
        """
        create table wiki_permission_logs (
          id uuid primary key default gen_random_uuid(),
          wiki_file_system_id uuid not null,
          action wiki_permission_action not null,
          invalid_kind permission_kind,
          invalid_id varchar(200),
          invalid_departments jsonb,
          invalid_rank_ids jsonb,
          invalid_position_ids jsonb,
          snapshot_permissions jsonb,
          replacements jsonb,
          note text,
          detected_at timestamptz not null default now(),
          resolved_at timestamptz,
          resolved_by uuid references users(id),
          created_at timestamptz not null default now(),
          updated_at timestamptz not null default now()
        )
        """
    )
    op.execute(
        "create index idx_wiki_permission_logs_node on wiki_permission_logs(wiki_file_system_id, detected_at desc)"
    )
    op.execute(
        """
        create unique index uq_wiki_permission_logs_open_invalid_id
          on wiki_permission_logs(wiki_file_system_id, invalid_kind, invalid_id)
          where resolved_at is null
        """
    )

    op.execute(
        """
        create table dismissed_permission_logs (
          id uuid primary key default gen_random_uuid(),
          log_type dismissed_permission_log_type not null,
          permission_log_id uuid not null,
          dismissed_by uuid not null references users(id),
          dismissed_at timestamptz not null default now(),
          constraint uq_dismissed_permission_logs unique (log_type, permission_log_id, dismissed_by)
        )
        """
    )


def downgrade() -> None:
    op.execute("drop table if exists dismissed_permission_logs")
    op.execute("drop table if exists wiki_permission_logs")
    op.execute("drop table if exists wiki_file_systems")
    op.execute("drop table if exists users")

    op.execute("drop type if exists dismissed_permission_log_type")
    op.execute("drop type if exists permission_kind")
    op.execute("drop type if exists wiki_permission_action")
    op.execute("drop type if exists wiki_node_type")
    op.execute("drop type if exists user_role")
