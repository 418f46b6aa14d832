from decimal import Decimal

from conftest import SCENARIO_COTAS, make_desenho
from cotacao.db import models
from cotacao.quality.tolerance import ToleranceResult
from cotacao.services import ops


def _op_with_samples(db_session):
    desenho = make_desenho(db_session, "DES-CC", SCENARIO_COTAS)
    op = ops.create_op(db_session, "OP-CC", desenho, 4, 4)
    amostra = db_session.query(models.Amostra).filter(models.Amostra.op_id == op.id).one()
    cota = next(c for c in desenho.cotas if c.etiqueta == "A")
    return op, amostra.id, cota.id


def test_upsert_after_concurrent_insert_updates_existing_row(db_session, monkeypatch):
    op, amostra_id, cota_id = _op_with_samples(db_session)
    db_session.add(models.Medicao(amostra_id=amostra_id, cota_id=cota_id, valor=Decimal("9.00")))
    db_session.commit()

    # a primeira consulta nao enxerga a linha gravada pela outra requisicao
    lookups = []
    find_medicao = ops._find_medicao

    def stale_first_lookup(db, amostra, cota):
        lookups.append(amostra)
        if len(lookups) == 1:
            return None
        return find_medicao(db, amostra, cota)

    monkeypatch.setattr(ops, "_find_medicao", stale_first_lookup)

    medicao, result = ops.upsert_medicao(db_session, op, amostra_id, cota_id, "10,03")

    assert len(lookups) == 2
    assert result == ToleranceResult.WITHIN
    assert medicao.valor == Decimal("10.03")
    db_session.expire_all()
    rows = db_session.query(models.Medicao).all()
    assert len(rows) == 1
    assert rows[0].valor == Decimal("10.03")


def test_upsert_replaces_value_without_conflict(db_session):
    op, amostra_id, cota_id = _op_with_samples(db_session)
    first, _ = ops.upsert_medicao(db_session, op, amostra_id, cota_id, "10,03")
    second, result = ops.upsert_medicao(db_session, op, amostra_id, cota_id, "10,10")
    assert second.id == first.id
    assert result == ToleranceResult.OUT
    assert db_session.query(models.Medicao).count() == 1
