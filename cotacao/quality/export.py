import csv
from datetime import datetime
from io import BytesIO, StringIO
from typing import Iterable, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from cotacao.quality.numbers import format_decimal_br
from cotacao.quality.progress import build_report, build_matrix, sort_cotas
from cotacao.quality.tolerance import ToleranceResult, evaluate_cota

CSV_DELIMITER = ";"
CSV_LINE_TERMINATOR = "\r\n"
CSV_BOM = "\ufeff"
CSV_CONTENT_TYPE = "text/csv; charset=utf-8"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_FILL_OK = PatternFill(start_color="DCFCE7", end_color="DCFCE7", fill_type="solid")
_FILL_FORA = PatternFill(start_color="FEE2E2", end_color="FEE2E2", fill_type="solid")


def export_filename(codigo: str, extension: str) -> str:
    return f"{codigo}-medicoes.{extension}"


def _header(cotas: Sequence) -> list[str]:
    return ["Peça", *(f"Cota {cota.etiqueta}" for cota in cotas)]


def _totals_label(lidos: int, esperado: int, pct: int) -> str:
    return f"Lidos: {lidos} de {esperado} ({pct}%)"


def build_csv(amostras: Sequence, cotas: Sequence, medicoes: Iterable) -> bytes:
    """
    Matriz Peca x Cota para planilhas em pt-BR: separador ';', virgula
    decimal, BOM UTF-8 e quebras de linha CRLF.
    """
    medicoes = list(medicoes)
    ordered_cotas = sort_cotas(cotas)
    ordered_amostras = sorted(amostras, key=lambda a: a.indice)
    matrix = build_matrix(ordered_amostras, ordered_cotas, medicoes)
    report = build_report(ordered_amostras, ordered_cotas, medicoes)

    buffer = StringIO()
    writer = csv.writer(buffer, delimiter=CSV_DELIMITER, lineterminator=CSV_LINE_TERMINATOR)
    writer.writerow(_header(ordered_cotas))
    for amostra in ordered_amostras:
        row = matrix.get(amostra.id, {})
        writer.writerow(
            [
                str(amostra.indice),
                *(
                    format_decimal_br(row[cota.id]) if cota.id in row else ""
                    for cota in ordered_cotas
                ),
            ]
        )
    writer.writerow([])
    totals = report.completeness
    writer.writerow(["Totais", _totals_label(totals.lidos, totals.esperado, totals.pct)])
    return (CSV_BOM + buffer.getvalue()).encode("utf-8")


def build_xlsx(codigo: str, amostras: Sequence, cotas: Sequence, medicoes: Iterable) -> Tuple[bytes, str]:
    medicoes = list(medicoes)
    ordered_cotas = sort_cotas(cotas)
    ordered_amostras = sorted(amostras, key=lambda a: a.indice)
    matrix = build_matrix(ordered_amostras, ordered_cotas, medicoes)
    report = build_report(ordered_amostras, ordered_cotas, medicoes)

    wb = Workbook()
    ws = wb.active
    ws.title = "MEDICOES"
    ws.append(_header(ordered_cotas))
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for amostra in ordered_amostras:
        row = matrix.get(amostra.id, {})
        ws.append([amostra.indice, *(row.get(cota.id) for cota in ordered_cotas)])
        excel_row = ws.max_row
        for col_idx, cota in enumerate(ordered_cotas, start=2):
            valor = row.get(cota.id)
            if valor is None:
                continue
            cell = ws.cell(row=excel_row, column=col_idx)
            cell.number_format = "#,##0.00"
            result = evaluate_cota(cota, valor)
            if result is ToleranceResult.WITHIN:
                cell.fill = _FILL_OK
            elif result is ToleranceResult.OUT:
                cell.fill = _FILL_FORA
    ws.append([])
    totals = report.completeness
    ws.append(["Totais", _totals_label(totals.lidos, totals.esperado, totals.pct)])
    ws.freeze_panes = "B2"
    for idx in range(1, len(ordered_cotas) + 2):
        ws.column_dimensions[get_column_letter(idx)].width = 14

    resumo = wb.create_sheet("RESUMO")
    resumo.append(["Cota", "Leituras", "OK", "Fora", "% Fora", "Especificação"])
    for summary in report.por_cota:
        resumo.append(
            [summary.etiqueta, summary.lidos, summary.ok, summary.fora, summary.pct_fora, summary.spec]
        )

    info = wb.create_sheet("INFO")
    info["A1"] = "OP"
    info["B1"] = codigo
    info["A2"] = "Gerado em"
    info["B2"] = datetime.utcnow().isoformat()

    out = BytesIO()
    wb.save(out)
    return out.getvalue(), export_filename(codigo, "xlsx")
