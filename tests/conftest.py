"""Shared test fixtures."""

from pathlib import Path

import pytest

from etc_processor.database.repository import Repository

CARD = "1234567890123456"

# （自）/（至） dialect, as exported by the ETC利用照会サービス
HEADER_ROW = (
    "利用年月日（自）,時分（自）,利用年月日（至）,時分（至）,"
    "利用ＩＣ（自）,利用ＩＣ（至）,割引前料金,ＥＴＣ割引額,通行料金,"
    "車種,車両番号,ＥＴＣカード番号,備考"
)

HEADER_CSV = (
    HEADER_ROW + "\n"
    f'25/07/01,08:10,25/07/01,08:45,東京,横浜町田,"1,500",-300,"1,200",1,品川300あ1234,{CARD},\n'
    f'25/07/03,18:02,25/07/03,18:40,横浜町田,東京,"1,500",0,"1,500",1,品川300あ1234,{CARD},帰路\n'
)

# No header: fixed column order, 15 cells
POSITIONAL_ROW = (
    f"25/07/01,08:10,25/07/01,08:45,東京,横浜町田,首都高速,1200,1500,-300,25,1,品川300あ1234,{CARD},"
)

POSITIONAL_CSV = POSITIONAL_ROW + "\n" + POSITIONAL_ROW.replace("08:10", "09:10") + "\n"


def make_header_csv(*rows: str) -> str:
    """HEADER_ROW followed by the given data rows."""
    return "\n".join((HEADER_ROW,) + rows) + "\n"


@pytest.fixture
def repo():
    r = Repository(":memory:")
    r.apply_migrations()
    yield r
    r.close()


@pytest.fixture
def export_file(tmp_path) -> Path:
    """HEADER_CSV written to disk in the export encoding."""
    path = tmp_path / "meisai.csv"
    path.write_bytes(HEADER_CSV.encode("cp932"))
    return path
