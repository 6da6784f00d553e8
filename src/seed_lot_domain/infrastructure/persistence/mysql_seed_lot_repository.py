# src/seed_lot_domain/infrastructure/persistence/mysql_seed_lot_repository.py
"""MySQL implementation of the seed lot repository."""

import json
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import mysql.connector
from mysql.connector import Error, errorcode

from src.common.config.settings import settings
from src.common.dtos.seed_lot_dtos import LotFilterDTO
from src.common.exceptions.custom_exceptions import ConcurrentModificationError, DatabaseError
from src.common.utils.date_utils import format_datetime_for_db, parse_datetime_from_db
from src.seed_lot_domain.domain.entities.ledger_entry import LedgerEntry
from src.seed_lot_domain.domain.entities.seed_lot import SeedLot
from src.seed_lot_domain.domain.repositories.seed_lot_repository import ISeedLotRepository

logger = logging.getLogger(__name__)

_LOT_COLUMNS = (
    "id, variety_id, level, quantity_total, quantity_available, status, custodian_id, production_date, "
    "parent_lot_id, expiry_date, batch_number, notes, source_lot_id, version, is_active, created_at, updated_at"
)


class MySQLSeedLotRepository(ISeedLotRepository):
    """
    MySQL implementation of the Seed Lot Repository.

    Writes outside a unit of work commit immediately. Inside one, lots read
    are locked with SELECT ... FOR UPDATE and everything commits together when
    the outermost unit of work exits. Reads outside a unit of work end their
    transaction, so a long-lived process never keeps reading an old snapshot.
    """

    def __init__(self) -> None:
        """Initializes the repository."""
        self._connection = None
        self._depth = 0

    def _get_connection(self):
        """Establishes or returns an active MySQL database connection."""
        if not self._connection or not self._connection.is_connected():
            try:
                self._connection = mysql.connector.connect(
                    host=settings.DB_HOST,
                    database=settings.DB_DATABASE,
                    user=settings.DB_USER,
                    password=settings.DB_PASSWORD,
                    autocommit=False,  # Better control over transactions
                    charset="utf8mb4",
                    use_unicode=True,
                )
            except Error as e:
                raise DatabaseError(f"Failed to connect to MySQL: {e}", original_exception=e)
        return self._connection

    def _commit_if_outside_unit(self, conn) -> None:
        if not self._depth:
            conn.commit()

    def _end_read_outside_unit(self, conn) -> None:
        """Closes the read transaction so the next query sees a fresh snapshot."""
        if not self._depth:
            conn.rollback()

    def create_tables(self) -> None:
        """Creates the lot and ledger tables if they do not exist."""
        create_lots_table_query = """
        CREATE TABLE IF NOT EXISTS seed_lots (
            id VARCHAR(64) PRIMARY KEY,
            variety_id INT UNSIGNED NOT NULL,
            level VARCHAR(4) NOT NULL,
            quantity_total DECIMAL(12, 3) NOT NULL,
            quantity_available DECIMAL(12, 3) NOT NULL,
            status VARCHAR(16) NOT NULL,
            custodian_id INT UNSIGNED,
            production_date DATETIME NOT NULL,
            parent_lot_id VARCHAR(64),
            expiry_date DATETIME,
            batch_number VARCHAR(50),
            notes TEXT,
            source_lot_id VARCHAR(64),
            version INT UNSIGNED NOT NULL DEFAULT 1,
            is_active TINYINT(1) NOT NULL DEFAULT 1,
            created_at DATETIME,
            updated_at DATETIME,
            INDEX idx_parent_lot_id (parent_lot_id),
            INDEX idx_source_lot_id (source_lot_id),
            INDEX idx_variety_level_status (variety_id, level, status),
            INDEX idx_custodian_id (custodian_id),
            CONSTRAINT fk_seed_lots_parent FOREIGN KEY (parent_lot_id) REFERENCES seed_lots (id),
            CONSTRAINT chk_seed_lots_quantity CHECK (quantity_available >= 0 AND quantity_available <= quantity_total)
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
        """
        create_ledger_table_query = """
        CREATE TABLE IF NOT EXISTS seed_lot_ledger (
            id BIGINT UNSIGNED PRIMARY KEY AUTO_INCREMENT,
            lot_id VARCHAR(64) NOT NULL,
            recorded_at DATETIME(6) NOT NULL,
            event_type VARCHAR(32) NOT NULL,
            actor_id VARCHAR(64) NOT NULL,
            quantity_delta DECIMAL(12, 3) NOT NULL DEFAULT 0,
            payload JSON,
            INDEX idx_ledger_lot_recorded (lot_id, recorded_at)
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
        """
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(create_lots_table_query)
            cursor.execute(create_ledger_table_query)
            conn.commit()
            logger.info("Seed lot and ledger tables checked/created.")
        except Error as e:
            conn.rollback()
            raise DatabaseError(f"Error creating seed lot tables: {e}", original_exception=e)
        finally:
            cursor.close()

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        conn = self._get_connection()
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if not self._depth:
                conn.rollback()
            raise
        else:
            self._depth -= 1
            if not self._depth:
                try:
                    conn.commit()
                except Error as e:
                    conn.rollback()
                    raise DatabaseError(f"Error committing unit of work: {e}", original_exception=e)

    def get_lot(self, lot_id: str, include_inactive: bool = False) -> Optional[SeedLot]:
        conn = self._get_connection()
        cursor = conn.cursor(dictionary=True)
        query = f"SELECT {_LOT_COLUMNS} FROM seed_lots WHERE id = %s"
        if not include_inactive:
            query += " AND is_active = 1"
        if self._depth:
            query += " FOR UPDATE"
        try:
            cursor.execute(query, (lot_id,))
            row = cursor.fetchone()
            return self._row_to_lot(row) if row else None
        except Error as e:
            raise DatabaseError(f"Error fetching seed lot {lot_id}: {e}", original_exception=e)
        finally:
            cursor.close()
            self._end_read_outside_unit(conn)

    def find_lots(self, lot_filter: LotFilterDTO) -> list[SeedLot]:
        conditions: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("variety_id", lot_filter.variety_id),
            ("level", lot_filter.level.value if lot_filter.level else None),
            ("status", lot_filter.status.value if lot_filter.status else None),
            ("custodian_id", lot_filter.custodian_id),
            ("parent_lot_id", lot_filter.parent_lot_id),
            ("source_lot_id", lot_filter.source_lot_id),
        ):
            if value is not None:
                conditions.append(f"{column} = %s")
                params.append(value)
        if not lot_filter.include_inactive:
            conditions.append("is_active = 1")

        query = f"SELECT {_LOT_COLUMNS} FROM seed_lots"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY id"
        if lot_filter.limit is not None:
            query += " LIMIT %s OFFSET %s"
            params.extend([lot_filter.limit, lot_filter.offset])

        conn = self._get_connection()
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute(query, params)
            return [self._row_to_lot(row) for row in cursor.fetchall()]
        except Error as e:
            raise DatabaseError(f"Error querying seed lots: {e}", original_exception=e)
        finally:
            cursor.close()
            self._end_read_outside_unit(conn)

    def find_children(self, parent_lot_id: str) -> list[SeedLot]:
        return self.find_lots(LotFilterDTO(parent_lot_id=parent_lot_id))

    def add_lot(self, lot: SeedLot) -> None:
        insert_query = f"""
        INSERT INTO seed_lots ({_LOT_COLUMNS})
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(insert_query, self._lot_to_params(lot))
            self._commit_if_outside_unit(conn)
        except Error as e:
            if not self._depth:
                conn.rollback()
            if e.errno == errorcode.ER_DUP_ENTRY:
                raise ConcurrentModificationError(lot.id, expected_version=0)
            raise DatabaseError(f"Error inserting seed lot {lot.id}: {e}", original_exception=e)
        finally:
            cursor.close()

    def update_lot(self, lot: SeedLot, expected_version: int) -> SeedLot:
        update_query = """
        UPDATE seed_lots SET
            quantity_available = %s,
            status = %s,
            custodian_id = %s,
            expiry_date = %s,
            batch_number = %s,
            notes = %s,
            is_active = %s,
            updated_at = %s,
            version = version + 1
        WHERE id = %s AND version = %s
        """
        params = (
            lot.quantity_available,
            lot.status.value,
            lot.custodian_id,
            format_datetime_for_db(lot.expiry_date),
            lot.batch_number,
            lot.notes,
            int(lot.is_active),
            format_datetime_for_db(lot.updated_at),
            lot.id,
            expected_version,
        )
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(update_query, params)
            if cursor.rowcount == 0:
                raise ConcurrentModificationError(lot.id, expected_version)
            self._commit_if_outside_unit(conn)
        except Error as e:
            if not self._depth:
                conn.rollback()
            raise DatabaseError(f"Error updating seed lot {lot.id}: {e}", original_exception=e)
        finally:
            cursor.close()
        return lot.with_changes(version=expected_version + 1)

    def next_lot_sequence(self, id_prefix: str) -> int:
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute("SELECT id FROM seed_lots WHERE id LIKE %s", (f"{id_prefix}%",))
            sequences = [
                int(row[0][len(id_prefix) :]) for row in cursor.fetchall() if row[0][len(id_prefix) :].isdigit()
            ]
            return max(sequences, default=0) + 1
        except Error as e:
            raise DatabaseError(f"Error computing lot sequence for {id_prefix}: {e}", original_exception=e)
        finally:
            cursor.close()
            self._end_read_outside_unit(conn)

    def append_ledger_entry(self, entry: LedgerEntry) -> None:
        insert_query = """
        INSERT INTO seed_lot_ledger (lot_id, recorded_at, event_type, actor_id, quantity_delta, payload)
        VALUES (%s, %s, %s, %s, %s, %s)
        """
        params = (
            entry.lot_id,
            format_datetime_for_db(entry.recorded_at),
            entry.event_type,
            entry.actor_id,
            entry.quantity_delta,
            json.dumps(entry.payload, default=str),
        )
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(insert_query, params)
            self._commit_if_outside_unit(conn)
        except Error as e:
            if not self._depth:
                conn.rollback()
            raise DatabaseError(f"Error appending ledger entry for {entry.lot_id}: {e}", original_exception=e)
        finally:
            cursor.close()

    def get_ledger_entries(self, lot_id: str) -> list[LedgerEntry]:
        conn = self._get_connection()
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute(
                """
                SELECT id, lot_id, recorded_at, event_type, actor_id, quantity_delta, payload
                FROM seed_lot_ledger
                WHERE lot_id = %s
                ORDER BY recorded_at, id
                """,
                (lot_id,),
            )
            return [
                LedgerEntry(
                    id=row["id"],
                    lot_id=row["lot_id"],
                    recorded_at=parse_datetime_from_db(row["recorded_at"]),
                    event_type=row["event_type"],
                    actor_id=row["actor_id"],
                    quantity_delta=float(row["quantity_delta"]),
                    payload=json.loads(row["payload"]) if row["payload"] else {},
                )
                for row in cursor.fetchall()
            ]
        except Error as e:
            raise DatabaseError(f"Error fetching ledger entries for {lot_id}: {e}", original_exception=e)
        finally:
            cursor.close()
            self._end_read_outside_unit(conn)

    @staticmethod
    def _lot_to_params(lot: SeedLot) -> tuple:
        return (
            lot.id,
            lot.variety_id,
            lot.level.value,
            lot.quantity_total,
            lot.quantity_available,
            lot.status.value,
            lot.custodian_id,
            format_datetime_for_db(lot.production_date),
            lot.parent_lot_id,
            format_datetime_for_db(lot.expiry_date),
            lot.batch_number,
            lot.notes,
            lot.source_lot_id,
            lot.version,
            int(lot.is_active),
            format_datetime_for_db(lot.created_at),
            format_datetime_for_db(lot.updated_at),
        )

    @staticmethod
    def _row_to_lot(row: dict[str, Any]) -> SeedLot:
        return SeedLot(
            id=row["id"],
            variety_id=row["variety_id"],
            level=row["level"],
            quantity_total=float(row["quantity_total"]),
            quantity_available=float(row["quantity_available"]),
            status=row["status"],
            custodian_id=row["custodian_id"],
            production_date=parse_datetime_from_db(row["production_date"]),
            parent_lot_id=row["parent_lot_id"],
            expiry_date=parse_datetime_from_db(row["expiry_date"]),
            batch_number=row["batch_number"],
            notes=row["notes"],
            source_lot_id=row["source_lot_id"],
            version=row["version"],
            is_active=bool(row["is_active"]),
            created_at=parse_datetime_from_db(row["created_at"]),
            updated_at=parse_datetime_from_db(row["updated_at"]),
        )

    def __del__(self) -> None:
        """Closes the database connection when the object is destroyed."""
        if self._connection and self._connection.is_connected():
            self._connection.close()
