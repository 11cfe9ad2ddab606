#!/usr/bin/env python3

# storage.py - PVC Fleet durable storage libraries
# Part of the Parallel Virtual Cluster (PVC) system
#
#    Copyright (C) 2018-2021 Joshua M. Boniface <joshua@boniface.me>
#
#    This program is free software: you can redistribute it and/or modify
#    it under the terms of the GNU General Public License as published by
#    the Free Software Foundation, version 3.
#
#    This program is distributed in the hope that it will be useful,
#    but WITHOUT ANY WARRANTY; without even the implied warranty of
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#    GNU General Public License for more details.
#
#    You should have received a copy of the GNU General Public License
#    along with this program.  If not, see <https://www.gnu.org/licenses/>.
#
###############################################################################

import os
import sqlite3
import contextlib

from celery.utils.log import get_task_logger

from pvcfleet.lib.errors import ObjectNotFoundError


logger = get_task_logger(__name__)


#
# Database functions
#
@contextlib.contextmanager
def dbconn(db_path):
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        yield cur
        conn.commit()
    finally:
        conn.close()


def init_database(db_path):
    if os.path.isfile(db_path):
        return

    logger.info(f"First run: initializing storage database {db_path}")
    with dbconn(db_path) as cur:
        # Table holding all stored objects, keyed by name
        cur.execute(
            """CREATE TABLE IF NOT EXISTS objects
                       (name TEXT PRIMARY KEY NOT NULL,
                        data BLOB NOT NULL)"""
        )


class SQLiteStorage:
    """
    Durable object storage in a local SQLite database file
    """

    def __init__(self, db_path):
        self.db_path = str(db_path)
        init_database(self.db_path)

    def put(self, name, data):
        if isinstance(data, str):
            data = data.encode("utf-8")

        with dbconn(self.db_path) as cur:
            cur.execute(
                """INSERT OR REPLACE INTO objects
                            (name, data)
                            VALUES
                            (?, ?)""",
                (name, sqlite3.Binary(data)),
            )
        logger.debug(f"Stored object {name} ({len(data)} bytes)")

    def get(self, name):
        with dbconn(self.db_path) as cur:
            cur.execute("""SELECT data FROM objects WHERE name = ?""", (name,))
            rows = cur.fetchall()

        if len(rows) < 1:
            raise ObjectNotFoundError(name)

        return bytes(rows[0][0])

    def list(self, prefix=""):
        with dbconn(self.db_path) as cur:
            cur.execute("""SELECT name FROM objects ORDER BY name""")
            rows = cur.fetchall()

        # Prefix matching in Python; LIKE would treat "_" and "%" as wildcards
        return [row[0] for row in rows if row[0].startswith(prefix)]

    def remove(self, name):
        with dbconn(self.db_path) as cur:
            cur.execute("""DELETE FROM objects WHERE name = ?""", (name,))

    def remove_all(self):
        with dbconn(self.db_path) as cur:
            cur.execute("""DELETE FROM objects""")
        logger.info(f"Removed all objects from {self.db_path}")


class FleetStorage:
    """
    Durable object storage in the fleet API file store

    Every object name is namespaced with the configured prefix so that several
    environments can share one fleet.
    """

    def __init__(self, session, prefix):
        self.session = session
        self.prefix = f"{prefix}-" if prefix else ""

    def _fullname(self, name):
        return f"{self.prefix}{name}"

    def put(self, name, data):
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.session.put_file(self._fullname(name), data)
        logger.debug(f"Stored object {name} ({len(data)} bytes)")

    def get(self, name):
        try:
            return self.session.get_file(self._fullname(name))
        except ObjectNotFoundError:
            raise ObjectNotFoundError(name)

    def list(self, prefix=""):
        names = self.session.list_files(self._fullname(prefix))
        return sorted(
            name[len(self.prefix):] for name in names if name.startswith(self.prefix)
        )

    def remove(self, name):
        self.session.delete_file(self._fullname(name))

    def remove_all(self):
        names = self.list()
        for name in names:
            self.remove(name)
        logger.info(f"Removed {len(names)} objects from fleet storage")
