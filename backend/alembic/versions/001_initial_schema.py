"""initial schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Users and sessions
    op.create_table('users',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('username', sa.String(length=255), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=True),
    sa.Column('bio', sa.Text(), nullable=True),
    sa.Column('password_hash', sa.String(length=255), nullable=False),
    sa.Column('role', sa.String(length=50), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('followers_count', sa.Integer(), nullable=False),
    sa.Column('following_count', sa.Integer(), nullable=False),
    sa.Column('achievements_count', sa.Integer(), nullable=False),
    sa.Column('achievement_points', sa.Integer(), nullable=False),
    sa.Column('anthropic_api_key', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('last_login', sa.DateTime(), nullable=True),
    sa.CheckConstraint("role IN ('admin', 'moderator', 'user')", name='users_role_check'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_username'), 'users', ['username'], unique=True)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table('sessions',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('token', sa.String(length=255), nullable=False),
    sa.Column('expires_at', sa.DateTime(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('last_activity', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sessions_user_id'), 'sessions', ['user_id'], unique=False)
    op.create_index(op.f('ix_sessions_token'), 'sessions', ['token'], unique=True)
    op.create_index(op.f('ix_sessions_expires_at'), 'sessions', ['expires_at'], unique=False)

    op.create_table('user_follows',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('follower_id', sa.Uuid(), nullable=False),
    sa.Column('following_id', sa.Uuid(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('follower_id <> following_id', name='user_follows_no_self'),
    sa.ForeignKeyConstraint(['follower_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['following_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('follower_id', 'following_id', name='uq_user_follows_pair')
    )
    op.create_index(op.f('ix_user_follows_follower_id'), 'user_follows', ['follower_id'], unique=False)
    op.create_index(op.f('ix_user_follows_following_id'), 'user_follows', ['following_id'], unique=False)

    # Direct messages
    op.create_table('dm_conversations',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('created_by', sa.Uuid(), nullable=True),
    sa.Column('last_message_at', sa.DateTime(), nullable=True),
    sa.Column('last_message_preview', sa.String(length=120), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_dm_conversations_last_message_at'), 'dm_conversations', ['last_message_at'], unique=False)

    op.create_table('dm_participants',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('conversation_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('unread_count', sa.Integer(), nullable=False),
    sa.Column('last_read_at', sa.DateTime(), nullable=True),
    sa.Column('e2ee_enabled', sa.Boolean(), nullable=False),
    sa.Column('e2ee_verified', sa.Boolean(), nullable=False),
    sa.Column('joined_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['conversation_id'], ['dm_conversations.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('conversation_id', 'user_id', name='uq_dm_participants_member')
    )
    op.create_index(op.f('ix_dm_participants_conversation_id'), 'dm_participants', ['conversation_id'], unique=False)
    op.create_index(op.f('ix_dm_participants_user_id'), 'dm_participants', ['user_id'], unique=False)

    op.create_table('dm_messages',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('conversation_id', sa.Uuid(), nullable=False),
    sa.Column('sender_id', sa.Uuid(), nullable=True),
    sa.Column('content', sa.Text(), nullable=True),
    sa.Column('is_encrypted', sa.Boolean(), nullable=False),
    sa.Column('encrypted_content', sa.Text(), nullable=True),
    sa.Column('encryption_algorithm', sa.String(length=20), nullable=True),
    sa.Column('sender_device_id', sa.String(length=255), nullable=True),
    sa.Column('sender_key', sa.Text(), nullable=True),
    sa.Column('session_id', sa.String(length=255), nullable=True),
    sa.Column('is_ai_generated', sa.Boolean(), nullable=False),
    sa.Column('ai_response_to', sa.Uuid(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint(
        "encryption_algorithm IS NULL OR encryption_algorithm IN ('olm.v1', 'megolm.v1')",
        name='dm_messages_algorithm_check'
    ),
    sa.ForeignKeyConstraint(['conversation_id'], ['dm_conversations.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='SET NULL'),
    sa.ForeignKeyConstraint(['ai_response_to'], ['dm_messages.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_dm_messages_conversation_id'), 'dm_messages', ['conversation_id'], unique=False)
    op.create_index(op.f('ix_dm_messages_created_at'), 'dm_messages', ['created_at'], unique=False)

    # Device keys and E2EE key distribution
    op.create_table('device_keys',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('device_id', sa.String(length=255), nullable=False),
    sa.Column('identity_key', sa.Text(), nullable=False),
    sa.Column('signing_key', sa.Text(), nullable=False),
    sa.Column('signed_prekey', sa.Text(), nullable=False),
    sa.Column('signed_prekey_id', sa.Integer(), nullable=False),
    sa.Column('signed_prekey_signature', sa.Text(), nullable=False),
    sa.Column('device_name', sa.String(length=255), nullable=True),
    sa.Column('device_type', sa.String(length=20), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('last_seen_at', sa.DateTime(), nullable=False),
    sa.Column('is_verified', sa.Boolean(), nullable=False),
    sa.Column('verified_at', sa.DateTime(), nullable=True),
    sa.Column('verified_by_user_id', sa.Uuid(), nullable=True),
    sa.Column('verified_by_device_id', sa.String(length=255), nullable=True),
    sa.Column('verification_method', sa.String(length=20), nullable=True),
    sa.Column('cross_sign_signature', sa.Text(), nullable=True),
    sa.CheckConstraint("device_type IN ('web', 'mobile', 'desktop')", name='device_keys_type_check'),
    sa.CheckConstraint(
        "verification_method IS NULL OR verification_method IN ('sas', 'cross_sign', 'admin', 'qr')",
        name='device_keys_verification_method_check'
    ),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['verified_by_user_id'], ['users.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'device_id', name='uq_device_keys_user_device')
    )
    op.create_index(op.f('ix_device_keys_user_id'), 'device_keys', ['user_id'], unique=False)

    op.create_table('one_time_prekeys',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('device_key_id', sa.Uuid(), nullable=False),
    sa.Column('key_id', sa.Integer(), nullable=False),
    sa.Column('public_key', sa.Text(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('claimed_at', sa.DateTime(), nullable=True),
    sa.Column('claimed_by_user', sa.Uuid(), nullable=True),
    sa.Column('claimed_by_device', sa.String(length=255), nullable=True),
    sa.ForeignKeyConstraint(['device_key_id'], ['device_keys.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['claimed_by_user'], ['users.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('device_key_id', 'key_id', name='uq_one_time_prekeys_device_key')
    )
    op.create_index(op.f('ix_one_time_prekeys_device_key_id'), 'one_time_prekeys', ['device_key_id'], unique=False)
    op.create_index(op.f('ix_one_time_prekeys_claimed_at'), 'one_time_prekeys', ['claimed_at'], unique=False)

    op.create_table('e2ee_key_backups',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('encrypted_backup', sa.Text(), nullable=False),
    sa.Column('backup_iv', sa.Text(), nullable=False),
    sa.Column('backup_auth_tag', sa.Text(), nullable=False),
    sa.Column('salt', sa.Text(), nullable=False),
    sa.Column('iterations', sa.Integer(), nullable=False),
    sa.Column('device_count', sa.Integer(), nullable=False),
    sa.Column('backup_version', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id')
    )

    op.create_table('megolm_session_shares',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('conversation_id', sa.Uuid(), nullable=False),
    sa.Column('session_id', sa.String(length=255), nullable=False),
    sa.Column('sender_user_id', sa.Uuid(), nullable=False),
    sa.Column('sender_device_id', sa.String(length=255), nullable=False),
    sa.Column('recipient_user_id', sa.Uuid(), nullable=False),
    sa.Column('recipient_device_id', sa.String(length=255), nullable=False),
    sa.Column('encrypted_session_key', sa.Text(), nullable=False),
    sa.Column('key_algorithm', sa.String(length=20), nullable=False),
    sa.Column('first_known_index', sa.Integer(), nullable=False),
    sa.Column('forwarded_count', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('claimed_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['conversation_id'], ['dm_conversations.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['sender_user_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['recipient_user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('session_id', 'recipient_device_id', name='uq_megolm_share_session_device')
    )
    op.create_index(op.f('ix_megolm_session_shares_conversation_id'), 'megolm_session_shares', ['conversation_id'], unique=False)
    op.create_index(op.f('ix_megolm_session_shares_session_id'), 'megolm_session_shares', ['session_id'], unique=False)

    op.create_table('e2ee_conversation_settings',
    sa.Column('conversation_id', sa.Uuid(), nullable=False),
    sa.Column('e2ee_required', sa.Boolean(), nullable=False),
    sa.Column('current_session_id', sa.String(length=255), nullable=True),
    sa.Column('current_session_created_at', sa.DateTime(), nullable=True),
    sa.Column('session_message_count', sa.Integer(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['conversation_id'], ['dm_conversations.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('conversation_id')
    )

    # AI consent in encrypted conversations
    op.create_table('e2ee_ai_consent',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('conversation_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('device_id', sa.String(length=255), nullable=True),
    sa.Column('consent_status', sa.String(length=20), nullable=False),
    sa.Column('allowed_features', sa.JSON(), nullable=False),
    sa.Column('consent_given_at', sa.DateTime(), nullable=True),
    sa.Column('consent_expires_at', sa.DateTime(), nullable=True),
    sa.Column('consent_reason', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint(
        "consent_status IN ('pending', 'granted', 'denied', 'revoked')",
        name='ai_consent_status_check'
    ),
    sa.ForeignKeyConstraint(['conversation_id'], ['dm_conversations.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('conversation_id', 'user_id', name='uq_ai_consent_member')
    )
    op.create_index(op.f('ix_e2ee_ai_consent_conversation_id'), 'e2ee_ai_consent', ['conversation_id'], unique=False)

    op.create_table('e2ee_ai_access_log',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('conversation_id', sa.Uuid(), nullable=False),
    sa.Column('message_id', sa.Uuid(), nullable=True),
    sa.Column('authorizing_user_id', sa.Uuid(), nullable=False),
    sa.Column('authorizing_device_id', sa.String(length=255), nullable=True),
    sa.Column('feature_used', sa.String(length=50), nullable=False),
    sa.Column('content_hash', sa.String(length=64), nullable=True),
    sa.Column('ai_model_used', sa.String(length=100), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['conversation_id'], ['dm_conversations.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['message_id'], ['dm_messages.id'], ondelete='SET NULL'),
    sa.ForeignKeyConstraint(['authorizing_user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_e2ee_ai_access_log_conversation_id'), 'e2ee_ai_access_log', ['conversation_id'], unique=False)

    op.create_table('e2ee_conversation_ai_settings',
    sa.Column('conversation_id', sa.Uuid(), nullable=False),
    sa.Column('ai_allowed', sa.Boolean(), nullable=False),
    sa.Column('require_unanimous_consent', sa.Boolean(), nullable=False),
    sa.Column('enabled_features', sa.JSON(), nullable=False),
    sa.Column('consent_expiry_days', sa.Integer(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['conversation_id'], ['dm_conversations.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('conversation_id')
    )

    # Device verification and cross-signing
    op.create_table('e2ee_sas_verifications',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('initiator_user_id', sa.Uuid(), nullable=False),
    sa.Column('initiator_device_id', sa.String(length=255), nullable=False),
    sa.Column('target_user_id', sa.Uuid(), nullable=False),
    sa.Column('target_device_id', sa.String(length=255), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('initiator_public_key', sa.Text(), nullable=True),
    sa.Column('target_public_key', sa.Text(), nullable=True),
    sa.Column('initiator_commitment', sa.Text(), nullable=True),
    sa.Column('sas_emoji_indices', sa.JSON(), nullable=True),
    sa.Column('sas_decimal', sa.String(length=32), nullable=True),
    sa.Column('transaction_id', sa.String(length=64), nullable=False),
    sa.Column('expires_at', sa.DateTime(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.Column('completed_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint(
        "status IN ('pending', 'started', 'key_exchanged', 'sas_ready', 'sas_match', "
        "'verified', 'cancelled', 'expired')",
        name='sas_verifications_status_check'
    ),
    sa.ForeignKeyConstraint(['initiator_user_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['target_user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_e2ee_sas_verifications_status'), 'e2ee_sas_verifications', ['status'], unique=False)
    op.create_index(op.f('ix_e2ee_sas_verifications_transaction_id'), 'e2ee_sas_verifications', ['transaction_id'], unique=True)

    op.create_table('e2ee_cross_signing_keys',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('key_type', sa.String(length=20), nullable=False),
    sa.Column('public_key', sa.Text(), nullable=False),
    sa.Column('signatures', sa.JSON(), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('revoked_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint(
        "key_type IN ('master', 'self_signing', 'user_signing')",
        name='cross_signing_keys_type_check'
    ),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_e2ee_cross_signing_keys_user_id'), 'e2ee_cross_signing_keys', ['user_id'], unique=False)

    op.create_table('e2ee_device_signatures',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('device_key_id', sa.Uuid(), nullable=False),
    sa.Column('signer_user_id', sa.Uuid(), nullable=False),
    sa.Column('signer_key_type', sa.String(length=20), nullable=False),
    sa.Column('signer_key_id', sa.String(length=255), nullable=False),
    sa.Column('signature', sa.Text(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint(
        "signer_key_type IN ('master', 'self_signing', 'user_signing', 'device')",
        name='device_signatures_key_type_check'
    ),
    sa.ForeignKeyConstraint(['device_key_id'], ['device_keys.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['signer_user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('device_key_id', 'signer_key_id', name='uq_device_signatures_signer')
    )
    op.create_index(op.f('ix_e2ee_device_signatures_device_key_id'), 'e2ee_device_signatures', ['device_key_id'], unique=False)

    op.create_table('e2ee_user_trust',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('truster_user_id', sa.Uuid(), nullable=False),
    sa.Column('trusted_user_id', sa.Uuid(), nullable=False),
    sa.Column('trusted_master_key', sa.Text(), nullable=False),
    sa.Column('trust_level', sa.String(length=20), nullable=False),
    sa.Column('verification_method', sa.String(length=20), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint("trust_level IN ('verified', 'tofu', 'blocked')", name='user_trust_level_check'),
    sa.ForeignKeyConstraint(['truster_user_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['trusted_user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('truster_user_id', 'trusted_user_id', name='uq_user_trust_pair')
    )
    op.create_index(op.f('ix_e2ee_user_trust_truster_user_id'), 'e2ee_user_trust', ['truster_user_id'], unique=False)
    op.create_index(op.f('ix_e2ee_user_trust_trusted_user_id'), 'e2ee_user_trust', ['trusted_user_id'], unique=False)

    # Prompt library
    op.create_table('prompt_categories',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('slug', sa.String(length=100), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('icon', sa.String(length=50), nullable=True),
    sa.Column('sort_order', sa.Integer(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('slug')
    )

    op.create_table('prompts',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('slug', sa.String(length=80), nullable=False),
    sa.Column('title', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('content', sa.Text(), nullable=False),
    sa.Column('category_id', sa.Uuid(), nullable=True),
    sa.Column('tags', sa.JSON(), nullable=False),
    sa.Column('variables', sa.JSON(), nullable=False),
    sa.Column('author_id', sa.Uuid(), nullable=True),
    sa.Column('visibility', sa.String(length=20), nullable=False),
    sa.Column('is_featured', sa.Boolean(), nullable=False),
    sa.Column('is_system', sa.Boolean(), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('use_count', sa.Integer(), nullable=False),
    sa.Column('save_count', sa.Integer(), nullable=False),
    sa.Column('avg_rating', sa.Float(), nullable=False),
    sa.Column('rating_count', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint("visibility IN ('private', 'public', 'unlisted')", name='prompts_visibility_check'),
    sa.CheckConstraint("status IN ('active', 'archived')", name='prompts_status_check'),
    sa.ForeignKeyConstraint(['category_id'], ['prompt_categories.id'], ondelete='SET NULL'),
    sa.ForeignKeyConstraint(['author_id'], ['users.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_prompts_slug'), 'prompts', ['slug'], unique=True)
    op.create_index(op.f('ix_prompts_category_id'), 'prompts', ['category_id'], unique=False)
    op.create_index(op.f('ix_prompts_author_id'), 'prompts', ['author_id'], unique=False)

    op.create_table('user_prompt_saves',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('prompt_id', sa.Uuid(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['prompt_id'], ['prompts.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'prompt_id', name='uq_prompt_saves_user')
    )
    op.create_index(op.f('ix_user_prompt_saves_user_id'), 'user_prompt_saves', ['user_id'], unique=False)

    op.create_table('prompt_ratings',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('prompt_id', sa.Uuid(), nullable=False),
    sa.Column('rating', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('rating >= 1 AND rating <= 5', name='prompt_ratings_value_check'),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['prompt_id'], ['prompts.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'prompt_id', name='uq_prompt_ratings_user')
    )
    op.create_index(op.f('ix_prompt_ratings_prompt_id'), 'prompt_ratings', ['prompt_id'], unique=False)

    # Resources, reviews, comments and favorites
    op.create_table('resources',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('slug', sa.String(length=120), nullable=False),
    sa.Column('title', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('url', sa.String(length=1024), nullable=False),
    sa.Column('category', sa.String(length=100), nullable=False),
    sa.Column('tags', sa.JSON(), nullable=False),
    sa.Column('difficulty', sa.String(length=20), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('github_owner', sa.String(length=255), nullable=True),
    sa.Column('github_repo', sa.String(length=255), nullable=True),
    sa.Column('github_stars', sa.Integer(), nullable=True),
    sa.Column('discovered_via', sa.String(length=100), nullable=True),
    sa.Column('reviews_count', sa.Integer(), nullable=False),
    sa.Column('average_rating', sa.Float(), nullable=False),
    sa.Column('comments_count', sa.Integer(), nullable=False),
    sa.Column('favorites_count', sa.Integer(), nullable=False),
    sa.Column('created_by', sa.Uuid(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint(
        "status IN ('official', 'community', 'beta', 'deprecated')",
        name='resources_status_check'
    ),
    sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_resources_slug'), 'resources', ['slug'], unique=True)
    op.create_index(op.f('ix_resources_category'), 'resources', ['category'], unique=False)

    op.create_table('resource_reviews',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('resource_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('rating', sa.Integer(), nullable=False),
    sa.Column('title', sa.String(length=255), nullable=True),
    sa.Column('content', sa.Text(), nullable=False),
    sa.Column('pros', sa.JSON(), nullable=False),
    sa.Column('cons', sa.JSON(), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('helpful_count', sa.Integer(), nullable=False),
    sa.Column('not_helpful_count', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('rating >= 1 AND rating <= 5', name='resource_reviews_rating_check'),
    sa.CheckConstraint(
        "status IN ('pending', 'approved', 'rejected', 'flagged')",
        name='resource_reviews_status_check'
    ),
    sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('resource_id', 'user_id', name='uq_resource_reviews_user')
    )
    op.create_index(op.f('ix_resource_reviews_resource_id'), 'resource_reviews', ['resource_id'], unique=False)
    op.create_index(op.f('ix_resource_reviews_user_id'), 'resource_reviews', ['user_id'], unique=False)

    op.create_table('review_helpful_votes',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('review_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('is_helpful', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['review_id'], ['resource_reviews.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('review_id', 'user_id', name='uq_review_helpful_votes_user')
    )
    op.create_index(op.f('ix_review_helpful_votes_review_id'), 'review_helpful_votes', ['review_id'], unique=False)

    op.create_table('resource_comments',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('resource_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('parent_id', sa.Uuid(), nullable=True),
    sa.Column('content', sa.Text(), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('likes_count', sa.Integer(), nullable=False),
    sa.Column('is_edited', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint(
        "status IN ('pending', 'approved', 'rejected', 'flagged')",
        name='resource_comments_status_check'
    ),
    sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['parent_id'], ['resource_comments.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_resource_comments_resource_id'), 'resource_comments', ['resource_id'], unique=False)

    op.create_table('resource_comment_likes',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('comment_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['comment_id'], ['resource_comments.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('comment_id', 'user_id', name='uq_comment_likes_user')
    )
    op.create_index(op.f('ix_resource_comment_likes_comment_id'), 'resource_comment_likes', ['comment_id'], unique=False)

    op.create_table('user_favorites',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('resource_id', sa.Uuid(), nullable=False),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'resource_id', name='uq_user_favorites_resource')
    )
    op.create_index(op.f('ix_user_favorites_user_id'), 'user_favorites', ['user_id'], unique=False)

    op.create_table('resource_discovery_queue',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('title', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('url', sa.String(length=1024), nullable=False),
    sa.Column('suggested_category', sa.String(length=100), nullable=True),
    sa.Column('suggested_tags', sa.JSON(), nullable=False),
    sa.Column('suggested_difficulty', sa.String(length=20), nullable=True),
    sa.Column('suggested_status', sa.String(length=20), nullable=True),
    sa.Column('github', sa.JSON(), nullable=True),
    sa.Column('package', sa.JSON(), nullable=True),
    sa.Column('source', sa.String(length=100), nullable=True),
    sa.Column('source_url', sa.String(length=1024), nullable=True),
    sa.Column('raw_data', sa.JSON(), nullable=True),
    sa.Column('ai_analysis', sa.JSON(), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('priority', sa.String(length=10), nullable=False),
    sa.Column('submitted_by', sa.Uuid(), nullable=True),
    sa.Column('reviewed_by', sa.Uuid(), nullable=True),
    sa.Column('reviewed_at', sa.DateTime(), nullable=True),
    sa.Column('review_notes', sa.Text(), nullable=True),
    sa.Column('rejection_reason', sa.Text(), nullable=True),
    sa.Column('created_resource_id', sa.Uuid(), nullable=True),
    sa.Column('duplicate_of_id', sa.Uuid(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint(
        "status IN ('pending', 'approved', 'rejected', 'duplicate', 'needs_info')",
        name='discovery_queue_status_check'
    ),
    sa.CheckConstraint("priority IN ('high', 'normal', 'low')", name='discovery_queue_priority_check'),
    sa.ForeignKeyConstraint(['submitted_by'], ['users.id'], ondelete='SET NULL'),
    sa.ForeignKeyConstraint(['reviewed_by'], ['users.id'], ondelete='SET NULL'),
    sa.ForeignKeyConstraint(['created_resource_id'], ['resources.id'], ondelete='SET NULL'),
    sa.ForeignKeyConstraint(['duplicate_of_id'], ['resources.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_resource_discovery_queue_url'), 'resource_discovery_queue', ['url'], unique=False)
    op.create_index(op.f('ix_resource_discovery_queue_status'), 'resource_discovery_queue', ['status'], unique=False)

    # Achievements and notifications
    op.create_table('achievements',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('slug', sa.String(length=100), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=False),
    sa.Column('icon', sa.String(length=50), nullable=False),
    sa.Column('category', sa.String(length=30), nullable=False),
    sa.Column('points', sa.Integer(), nullable=False),
    sa.Column('tier', sa.String(length=20), nullable=False),
    sa.Column('metric', sa.String(length=50), nullable=True),
    sa.Column('requirement_type', sa.String(length=20), nullable=False),
    sa.Column('requirement_value', sa.Integer(), nullable=False),
    sa.Column('is_hidden', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint(
        "category IN ('contribution', 'engagement', 'milestone', 'special')",
        name='achievements_category_check'
    ),
    sa.CheckConstraint("tier IN ('bronze', 'silver', 'gold', 'platinum')", name='achievements_tier_check'),
    sa.CheckConstraint('requirement_value >= 1', name='achievements_requirement_positive'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_achievements_slug'), 'achievements', ['slug'], unique=True)
    op.create_index(op.f('ix_achievements_metric'), 'achievements', ['metric'], unique=False)

    op.create_table('user_achievements',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('achievement_id', sa.Uuid(), nullable=False),
    sa.Column('earned_at', sa.DateTime(), nullable=False),
    sa.Column('is_featured', sa.Boolean(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['achievement_id'], ['achievements.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'achievement_id', name='uq_user_achievements_pair')
    )
    op.create_index(op.f('ix_user_achievements_user_id'), 'user_achievements', ['user_id'], unique=False)

    op.create_table('achievement_progress',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('metric', sa.String(length=50), nullable=False),
    sa.Column('current_value', sa.Integer(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'metric', name='uq_achievement_progress_metric')
    )
    op.create_index(op.f('ix_achievement_progress_user_id'), 'achievement_progress', ['user_id'], unique=False)

    op.create_table('notifications',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('type', sa.String(length=30), nullable=False),
    sa.Column('title', sa.String(length=255), nullable=False),
    sa.Column('message', sa.Text(), nullable=True),
    sa.Column('data', sa.JSON(), nullable=False),
    sa.Column('read', sa.Boolean(), nullable=False),
    sa.Column('read_at', sa.DateTime(), nullable=True),
    sa.Column('actor_id', sa.Uuid(), nullable=True),
    sa.Column('resource_type', sa.String(length=50), nullable=True),
    sa.Column('resource_id', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'], unique=False)
    op.create_index(op.f('ix_notifications_type'), 'notifications', ['type'], unique=False)
    op.create_index(op.f('ix_notifications_created_at'), 'notifications', ['created_at'], unique=False)

    op.create_table('notification_preferences',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('in_app_comments', sa.Boolean(), nullable=False),
    sa.Column('in_app_replies', sa.Boolean(), nullable=False),
    sa.Column('in_app_follows', sa.Boolean(), nullable=False),
    sa.Column('in_app_messages', sa.Boolean(), nullable=False),
    sa.Column('in_app_achievements', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id')
    )


def downgrade():
    # Reverse dependency order; indexes go with their tables
    for table in (
        'notification_preferences',
        'notifications',
        'achievement_progress',
        'user_achievements',
        'achievements',
        'resource_discovery_queue',
        'user_favorites',
        'resource_comment_likes',
        'resource_comments',
        'review_helpful_votes',
        'resource_reviews',
        'resources',
        'prompt_ratings',
        'user_prompt_saves',
        'prompts',
        'prompt_categories',
        'e2ee_user_trust',
        'e2ee_device_signatures',
        'e2ee_cross_signing_keys',
        'e2ee_sas_verifications',
        'e2ee_conversation_ai_settings',
        'e2ee_ai_access_log',
        'e2ee_ai_consent',
        'e2ee_conversation_settings',
        'megolm_session_shares',
        'e2ee_key_backups',
        'one_time_prekeys',
        'device_keys',
        'dm_messages',
        'dm_participants',
        'dm_conversations',
        'user_follows',
        'sessions',
        'users',
    ):
        op.drop_table(table)
