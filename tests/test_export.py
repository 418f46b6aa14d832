from decimal import Decimal
from io import BytesIO
from types import SimpleNamespace

from openpyxl import load_workbook

from cotacao.quality.export import CSV_BOM, build_csv, build_xlsx, export_filename


def _ns(**kwargs):
    return SimpleNamespace(**kwargs)


COTAS = [
    _ns(id="b", etiqueta="B", nominal=None, tol_mais=None, tol_menos=None, unidade="mm"),
    _ns(id="a", etiqueta="A", nominal=Decimal("10"), tol_mais=Decimal("0.05"), tol_menos=Decimal("0.05"), unidade="mm"),
]
AMOSTRAS = [_ns(id="s8", indice=8), _ns(id="s4", indice=4)]
MEDICOES = [
    _ns(amostra_id="s4", cota_id="a", valor=Decimal("10.03")),
    _ns(amostra_id="s4", cota_id="b", valor=Decimal("5")),
    _ns(amostra_id="s8", cota_id="a", valor=Decimal("1010.1")),
]


def test_csv_layout():
    content = build_csv(AMOSTRAS, COTAS, MEDICOES).decode("utf-8")
    assert content.startswith(CSV_BOM)
    lines = content[len(CSV_BOM):].split("\r\n")
    assert lines == [
        "Peça;Cota A;Cota B",
        "4;10,03;5,00",
        "8;1.010,10;",
        "",
        "Totais;Lidos: 3 de 4 (75%)",
        "",
    ]


def test_csv_without_samples():
    content = build_csv([], COTAS, []).decode("utf-8")
    lines = content[len(CSV_BOM):].split("\r\n")
    assert lines[0] == "Peça;Cota A;Cota B"
    assert lines[2] == "Totais;Lidos: 0 de 0 (0%)"


def test_export_filename():
    assert export_filename("OP-77", "csv") == "OP-77-medicoes.csv"


def test_xlsx_sheets_and_highlight():
    content, filename = build_xlsx("OP-77", AMOSTRAS, COTAS, MEDICOES)
    assert filename == "OP-77-medicoes.xlsx"

    wb = load_workbook(BytesIO(content))
    assert wb.sheetnames == ["MEDICOES", "RESUMO", "INFO"]
    ws = wb["MEDICOES"]
    assert [cell.value for cell in ws[1]] == ["Peça", "Cota A", "Cota B"]
    assert ws["A2"].value == 4
    assert float(ws["B2"].value) == 10.03
    assert ws["C3"].value is None
    assert "DCFCE7" in ws["B2"].fill.start_color.rgb
    assert "FEE2E2" in ws["B3"].fill.start_color.rgb

    resumo = wb["RESUMO"]
    assert [cell.value for cell in resumo[2]] == ["A", 2, 1, 1, 50, "10,00mm +0,05 / -0,05"]
    assert wb["INFO"]["B1"].value == "OP-77"
