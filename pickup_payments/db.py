"""
Database utilities for the payments service.
"""
import json
import logging
import traceback
from decimal import Decimal

import mysql.connector

from .config import (
    DB_TABLE_PAYPAL_PLANS,
    DB_TABLE_SUBSCRIPTIONS,
    DB_TABLE_SUBSCRIPTION_EVENTS,
    DB_TABLE_WEBHOOK_EVENTS,
)
from .errors import PersistenceError
from .models import (
    OrderRef, SubscriptionRef, SubscriptionRecord, ProvisionedPlan, STATUS_ACTIVE
)
from .utils.helpers import generate_id, to_db_datetime, from_db_datetime, utc_now

logger = logging.getLogger('pickup_payments')

TABLE_DEFINITIONS = (
    f'''
    CREATE TABLE IF NOT EXISTS {DB_TABLE_PAYPAL_PLANS} (
        plan_key VARCHAR(64) NOT NULL PRIMARY KEY,
        paypal_product_id VARCHAR(64) NOT NULL,
        paypal_plan_id VARCHAR(64) NOT NULL,
        name VARCHAR(255) NOT NULL DEFAULT '',
        amount DECIMAL(10, 2) NULL,
        currency CHAR(3) NOT NULL DEFAULT 'USD',
        created_at DATETIME NOT NULL
    )
    ''',
    f'''
    CREATE TABLE IF NOT EXISTS {DB_TABLE_SUBSCRIPTIONS} (
        id VARCHAR(64) NOT NULL PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL,
        paypal_order_id VARCHAR(64) NULL,
        paypal_subscription_id VARCHAR(64) NULL,
        plan VARCHAR(32) NOT NULL,
        status VARCHAR(16) NOT NULL DEFAULT 'pending',
        amount DECIMAL(10, 2) NOT NULL,
        currency CHAR(3) NOT NULL DEFAULT 'USD',
        game_id VARCHAR(64) NULL,
        description VARCHAR(255) NULL,
        created_at DATETIME NOT NULL,
        updated_at DATETIME NOT NULL,
        expires_at DATETIME NULL,
        INDEX idx_subscriptions_user_plan (user_id, plan, status),
        INDEX idx_subscriptions_order (paypal_order_id),
        INDEX idx_subscriptions_paypal_sub (paypal_subscription_id),
        CONSTRAINT chk_subscriptions_one_external_id CHECK (
            (paypal_order_id IS NULL) <> (paypal_subscription_id IS NULL)
        )
    )
    ''',
    f'''
    CREATE TABLE IF NOT EXISTS {DB_TABLE_SUBSCRIPTION_EVENTS} (
        id BIGINT AUTO_INCREMENT PRIMARY KEY,
        event_type VARCHAR(128) NOT NULL,
        entity_id VARCHAR(64) NULL,
        provider VARCHAR(32) NOT NULL,
        user_id VARCHAR(64) NULL,
        data JSON NULL,
        processed BOOLEAN NOT NULL DEFAULT FALSE,
        created_at DATETIME NOT NULL
    )
    ''',
    f'''
    CREATE TABLE IF NOT EXISTS {DB_TABLE_WEBHOOK_EVENTS} (
        event_id VARCHAR(128) NOT NULL,
        provider VARCHAR(32) NOT NULL,
        processed_at DATETIME NOT NULL,
        PRIMARY KEY (event_id, provider)
    )
    ''',
)

SUBSCRIPTION_COLUMNS = (
    'id, user_id, paypal_order_id, paypal_subscription_id, plan, status, amount, currency, '
    'game_id, description, created_at, updated_at, expires_at'
)


class DatabaseManager:
    """
    Database manager for payment operations.
    Handles connections and table initialization.
    """

    def __init__(self, db_config):
        """Initialize the database manager"""
        self.db_config = db_config

    def get_connection(self):
        """Get a new database connection"""
        # Copy so the caller's config dict is left untouched
        config = self.db_config.copy()
        config['buffered'] = True
        return mysql.connector.connect(**config)

    def init_tables(self):
        """Initialize database tables required for payment processing"""
        try:
            conn = self.get_connection()
            cursor = conn.cursor()

            for statement in TABLE_DEFINITIONS:
                cursor.execute(statement)

            conn.commit()
            cursor.close()
            conn.close()

            logger.info("Payment database tables initialized successfully")
            return True

        except mysql.connector.Error as e:
            logger.error(f"Error initializing database tables: {str(e)}")
            logger.error(traceback.format_exc())
            return False

    def execute(self, query, params=(), fetch=None):
        """
        Run one statement on its own connection

        Args:
            query: SQL with %s placeholders
            params: query parameters
            fetch: None, 'one' or 'all'

        Returns:
            fetched row(s) as dicts, or the affected row count when fetch is None
        """
        try:
            conn = self.get_connection()
            cursor = conn.cursor(dictionary=True)
            try:
                cursor.execute(query, params)
                if fetch == 'one':
                    result = cursor.fetchone()
                elif fetch == 'all':
                    result = cursor.fetchall()
                else:
                    conn.commit()
                    result = cursor.rowcount
            finally:
                cursor.close()
                conn.close()
            return result

        except mysql.connector.Error as e:
            logger.error(f"Database error: {str(e)}")
            logger.error(traceback.format_exc())
            raise PersistenceError(f"Database error: {str(e)}")


class SubscriptionStore:
    """
    Reads and writes ProvisionedPlan and SubscriptionRecord rows.

    Every write is a single statement keyed by plan key or PayPal id, which
    is the only coordination between concurrent requests.
    """

    provider = 'paypal'

    def __init__(self, db):
        self.db = db

    # =============================================================================
    # PROVISIONED PLANS
    # =============================================================================

    def get_provisioned_plan(self, plan_key):
        row = self.db.execute(
            f"SELECT * FROM {DB_TABLE_PAYPAL_PLANS} WHERE plan_key = %s",
            (plan_key,),
            fetch='one',
        )
        return self._row_to_plan(row) if row else None

    def save_provisioned_plan(self, plan):
        """
        Insert unless a row for the key already exists; returns the stored row

        A concurrent cold start may have inserted first, in which case the
        earlier row wins and is returned.
        """
        self.db.execute(
            f"""
            INSERT IGNORE INTO {DB_TABLE_PAYPAL_PLANS}
            (plan_key, paypal_product_id, paypal_plan_id, name, amount, currency, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                plan.plan_key,
                plan.paypal_product_id,
                plan.paypal_plan_id,
                plan.name,
                plan.amount,
                plan.currency,
                to_db_datetime(plan.created_at or utc_now()),
            ),
        )
        stored = self.get_provisioned_plan(plan.plan_key)
        if stored is None:
            raise PersistenceError(f"Provisioned plan {plan.plan_key} was not saved")
        return stored

    # =============================================================================
    # SUBSCRIPTION RECORDS
    # =============================================================================

    def insert_subscription(self, record):
        """Persist a new record; fills in id and timestamps"""
        now = utc_now()
        record.id = record.id or generate_id('sub_')
        record.created_at = record.created_at or now
        record.updated_at = record.updated_at or record.created_at

        self.db.execute(
            f"""
            INSERT INTO {DB_TABLE_SUBSCRIPTIONS}
            ({SUBSCRIPTION_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                record.id,
                record.user_id,
                record.paypal_order_id,
                record.paypal_subscription_id,
                record.plan,
                record.status,
                record.amount,
                record.currency,
                record.game_id,
                record.description,
                to_db_datetime(record.created_at),
                to_db_datetime(record.updated_at),
                to_db_datetime(record.expires_at),
            ),
        )
        logger.info(f"Stored {record.plan} record {record.id} for user {record.user_id} ({record.status})")
        return record

    def get_by_subscription_id(self, paypal_subscription_id):
        row = self.db.execute(
            f"""
            SELECT {SUBSCRIPTION_COLUMNS} FROM {DB_TABLE_SUBSCRIPTIONS}
            WHERE paypal_subscription_id = %s
            ORDER BY updated_at DESC LIMIT 1
            """,
            (paypal_subscription_id,),
            fetch='one',
        )
        return self._row_to_record(row) if row else None

    def get_by_order_id(self, paypal_order_id):
        row = self.db.execute(
            f"""
            SELECT {SUBSCRIPTION_COLUMNS} FROM {DB_TABLE_SUBSCRIPTIONS}
            WHERE paypal_order_id = %s
            ORDER BY updated_at DESC LIMIT 1
            """,
            (paypal_order_id,),
            fetch='one',
        )
        return self._row_to_record(row) if row else None

    def update_status_by_subscription_id(self, paypal_subscription_id, status, expires_at=None):
        """Returns the number of records changed"""
        now = to_db_datetime(utc_now())
        if expires_at is not None:
            return self.db.execute(
                f"""
                UPDATE {DB_TABLE_SUBSCRIPTIONS}
                SET status = %s, expires_at = %s, updated_at = %s
                WHERE paypal_subscription_id = %s
                """,
                (status, to_db_datetime(expires_at), now, paypal_subscription_id),
            )
        return self.db.execute(
            f"""
            UPDATE {DB_TABLE_SUBSCRIPTIONS}
            SET status = %s, updated_at = %s
            WHERE paypal_subscription_id = %s
            """,
            (status, now, paypal_subscription_id),
        )

    def update_status_by_order_id(self, paypal_order_id, status):
        """Returns the number of records changed"""
        return self.db.execute(
            f"""
            UPDATE {DB_TABLE_SUBSCRIPTIONS}
            SET status = %s, updated_at = %s
            WHERE paypal_order_id = %s
            """,
            (status, to_db_datetime(utc_now()), paypal_order_id),
        )

    def get_latest_active(self, user_id, plan):
        """Most recent active record for (user, plan), expired or not"""
        row = self.db.execute(
            f"""
            SELECT {SUBSCRIPTION_COLUMNS} FROM {DB_TABLE_SUBSCRIPTIONS}
            WHERE user_id = %s AND plan = %s AND status = %s
            ORDER BY created_at DESC LIMIT 1
            """,
            (user_id, plan, STATUS_ACTIVE),
            fetch='one',
        )
        return self._row_to_record(row) if row else None

    def list_for_user(self, user_id):
        rows = self.db.execute(
            f"""
            SELECT {SUBSCRIPTION_COLUMNS} FROM {DB_TABLE_SUBSCRIPTIONS}
            WHERE user_id = %s
            ORDER BY created_at DESC
            """,
            (user_id,),
            fetch='all',
        )
        return [self._row_to_record(row) for row in rows or []]

    # =============================================================================
    # WEBHOOK AUDIT
    # =============================================================================

    def log_event(self, event_type, entity_id, user_id, data, processed=False):
        """Log a webhook event for debugging and auditing; never raises"""
        try:
            data_json = json.dumps(data, default=str) if isinstance(data, (dict, list)) else data
            self.db.execute(
                f"""
                INSERT INTO {DB_TABLE_SUBSCRIPTION_EVENTS}
                (event_type, entity_id, provider, user_id, data, processed, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (event_type, entity_id, self.provider, user_id, data_json, processed, to_db_datetime(utc_now())),
            )
            return True
        except PersistenceError as e:
            logger.error(f"Error logging event {event_type}: {e.message}")
            return False

    def is_event_processed(self, event_id):
        """Check if webhook event has already been processed"""
        row = self.db.execute(
            f"SELECT event_id FROM {DB_TABLE_WEBHOOK_EVENTS} WHERE event_id = %s AND provider = %s",
            (event_id, self.provider),
            fetch='one',
        )
        return row is not None

    def mark_event_processed(self, event_id):
        """Mark webhook event as processed"""
        self.db.execute(
            f"""
            INSERT IGNORE INTO {DB_TABLE_WEBHOOK_EVENTS}
            (event_id, provider, processed_at)
            VALUES (%s, %s, %s)
            """,
            (event_id, self.provider, to_db_datetime(utc_now())),
        )

    # =============================================================================
    # ROW MAPPING
    # =============================================================================

    @staticmethod
    def _row_to_plan(row):
        amount = row.get('amount')
        return ProvisionedPlan(
            plan_key=row['plan_key'],
            paypal_product_id=row['paypal_product_id'],
            paypal_plan_id=row['paypal_plan_id'],
            name=row.get('name') or '',
            amount=Decimal(str(amount)) if amount is not None else None,
            currency=row.get('currency') or 'USD',
            created_at=from_db_datetime(row.get('created_at')),
        )

    @staticmethod
    def _row_to_record(row):
        order_id = row.get('paypal_order_id')
        subscription_id = row.get('paypal_subscription_id')
        if bool(order_id) == bool(subscription_id):
            raise PersistenceError(
                f"Subscription record {row.get('id')} must reference exactly one PayPal order or subscription"
            )
        external = OrderRef(order_id) if order_id else SubscriptionRef(subscription_id)

        return SubscriptionRecord(
            id=row['id'],
            user_id=row['user_id'],
            plan=row['plan'],
            status=row['status'],
            external=external,
            amount=Decimal(str(row['amount'])),
            currency=row.get('currency') or 'USD',
            game_id=row.get('game_id'),
            description=row.get('description'),
            created_at=from_db_datetime(row.get('created_at')),
            updated_at=from_db_datetime(row.get('updated_at')),
            expires_at=from_db_datetime(row.get('expires_at')),
        )
