"""
dbfload - build a .DBF table from a CSV file.

Usage:
    $ dbfload input.csv [output.dbf [field#=equals_value]]

The first CSV row must hold the field names (max 10 characters, unique).
Field types are inferred from the data; --field NAME=SPEC forces a
definition such as C(80) or N(10,2).
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

import click

from dbf_cli import handle_cli_exception, setup_logging
from dbf_codec import DBF_DEFAULT_ENCODING, build_field_spec, parse_field_spec
from dbf_convert import csv_to_table, read_csv_rows
from dbf_module import dbf_table_save


logger = logging.getLogger(__name__)


def parse_field_options(values: Tuple[str, ...]) -> Dict[str, Tuple[str, int, int]]:
    """Turn NAME=SPEC option values into field definitions."""
    overrides = {}
    for value in values:
        name, sep, spec = value.partition('=')
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=SPEC, got {value!r}", param_hint="--field")
        try:
            overrides[name] = parse_field_spec(spec)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--field") from None
    return overrides


@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.argument(
    "output_file",
    required=False,
    default="output.dbf",
    type=click.Path(dir_okay=False, path_type=Path),
)
@click.argument("equals", required=False)
@click.option(
    "-f", "--field",
    "fields",
    multiple=True,
    metavar="NAME=SPEC",
    help="Force a field definition, e.g. NAME=C(80) (can be repeated)",
)
@click.option(
    "-e", "--encoding",
    default=DBF_DEFAULT_ENCODING,
    show_default=True,
    help="Text encoding of the CSV file and the table",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Show debug output",
)
def main(input_file: Path, output_file: Path, equals: Optional[str],
         fields: Tuple[str, ...], encoding: str, verbose: bool) -> None:
    """
    Load a CSV file into a new dBase III table.

    EQUALS keeps only rows whose column number (zero-based) equals a value,
    e.g. 2=London.

    \b
    Examples:
      dbfload customers.csv
      dbfload customers.csv customers.dbf
      dbfload customers.csv london.dbf 2=London
      dbfload -f ZIP=C(10) customers.csv customers.dbf
    """
    setup_logging(verbose)
    overrides = parse_field_options(fields)

    try:
        rows = read_csv_rows(str(input_file), encoding=encoding)
        table, report = csv_to_table(rows, filter_spec=equals, overrides=overrides, encoding=encoding)

        if report.truncated:
            logger.info("Number of truncated fields: %d", report.truncated)

        logger.info("Creating table:")
        logger.info("------------------------")
        for field in table.fields:
            logger.info("%-10s %s", field.name, build_field_spec(field.field_type, field.length, field.decimals))
        logger.info("------------------------")

        if equals:
            logger.info("Filtered records: %d", report.filtered)
        logger.info("Total records loaded: %d", report.loaded)

        dbf_table_save(table, str(output_file))

    except Exception as e:
        handle_cli_exception(e, verbose)


if __name__ == "__main__":
    main()
