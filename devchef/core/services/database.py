"""
Database dialects — how to talk to the db container for each engine.

Each dialect knows its image, the container environment it needs, and
how to build the argv for running SQL inside the container.
"""

from __future__ import annotations

from devchef.core.errors import ConfigurationInvalid
from devchef.core.models.recipe import Recipe


class DatabaseDialect:
    """Base dialect; subclasses fill in the engine-specific parts."""

    name = ""
    image_name = ""
    default_version = "latest"
    port = 0
    data_dir = ""

    def image(self, version: str | None) -> str:
        return f"{self.image_name}:{version or self.default_version}"

    def environment(self, recipe: Recipe) -> dict[str, str]:
        raise NotImplementedError

    def exec_env(self, recipe: Recipe) -> dict[str, str]:
        """Environment for ``docker exec`` when running the client."""
        return {}

    def query_command(self, recipe: Recipe, sql: str) -> list[str]:
        raise NotImplementedError

    def drop_all_tables_sql(self, recipe: Recipe) -> str:
        raise NotImplementedError

    def drop_all_tables_command(self, recipe: Recipe) -> list[str]:
        return self.query_command(recipe, self.drop_all_tables_sql(recipe))


class PostgresDialect(DatabaseDialect):
    name = "pgsql"
    image_name = "postgres"
    default_version = "16"
    port = 5432
    data_dir = "/var/lib/postgresql/data"

    def environment(self, recipe: Recipe) -> dict[str, str]:
        return {
            "POSTGRES_USER": recipe.db_user,
            "POSTGRES_PASSWORD": recipe.db_password,
            "POSTGRES_DB": recipe.effective_db_name,
        }

    def exec_env(self, recipe: Recipe) -> dict[str, str]:
        return {"PGPASSWORD": recipe.db_password}

    def query_command(self, recipe: Recipe, sql: str) -> list[str]:
        return [
            "psql", "-v", "ON_ERROR_STOP=1",
            "-U", recipe.db_user,
            "-d", recipe.effective_db_name,
            "-c", sql,
        ]

    def drop_all_tables_sql(self, recipe: Recipe) -> str:
        return f"DROP SCHEMA public CASCADE; CREATE SCHEMA public; GRANT ALL ON SCHEMA public TO \"{recipe.db_user}\";"


class MysqlDialect(DatabaseDialect):
    name = "mysqli"
    image_name = "mysql"
    default_version = "8.4"
    port = 3306
    data_dir = "/var/lib/mysql"

    def environment(self, recipe: Recipe) -> dict[str, str]:
        return {
            "MYSQL_ROOT_PASSWORD": recipe.db_password,
            "MYSQL_DATABASE": recipe.effective_db_name,
            "MYSQL_USER": recipe.db_user,
            "MYSQL_PASSWORD": recipe.db_password,
        }

    def query_command(self, recipe: Recipe, sql: str) -> list[str]:
        return [
            "mysql",
            f"-u{recipe.db_user}",
            f"-p{recipe.db_password}",
            "-D", recipe.effective_db_name,
            "-e", sql,
        ]

    def drop_all_tables_sql(self, recipe: Recipe) -> str:
        db = recipe.effective_db_name.replace("'", "''")
        return (
            "SET FOREIGN_KEY_CHECKS = 0; "
            "SET GROUP_CONCAT_MAX_LEN=32768; "
            "SET @tables = NULL; "
            "SELECT GROUP_CONCAT(CONCAT('`', table_name, '`')) INTO @tables "
            f"FROM information_schema.tables WHERE table_schema = '{db}'; "
            "SET @tables = CONCAT('DROP TABLE IF EXISTS ', @tables); "
            "PREPARE stmt FROM @tables; "
            "EXECUTE stmt; "
            "DEALLOCATE PREPARE stmt; "
            "SET FOREIGN_KEY_CHECKS = 1;"
        )


class MariadbDialect(MysqlDialect):
    name = "mariadb"
    image_name = "mariadb"
    default_version = "11"

    def environment(self, recipe: Recipe) -> dict[str, str]:
        return {
            "MARIADB_ROOT_PASSWORD": recipe.db_password,
            "MARIADB_DATABASE": recipe.effective_db_name,
            "MARIADB_USER": recipe.db_user,
            "MARIADB_PASSWORD": recipe.db_password,
        }

    def query_command(self, recipe: Recipe, sql: str) -> list[str]:
        return ["mariadb", *super().query_command(recipe, sql)[1:]]


_DIALECTS: dict[str, type[DatabaseDialect]] = {
    "pgsql": PostgresDialect,
    "mysqli": MysqlDialect,
    "mariadb": MariadbDialect,
}


def dialect_for(db_type: str) -> DatabaseDialect:
    """Dialect for *db_type*.

    Raises:
        ConfigurationInvalid: unsupported engine.
    """
    try:
        return _DIALECTS[db_type]()
    except KeyError:
        raise ConfigurationInvalid(
            f"Unsupported database type '{db_type}' (supported: {', '.join(_DIALECTS)})"
        ) from None
