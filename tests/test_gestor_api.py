from pathlib import Path

from conftest import SCENARIO_COTAS, make_desenho, png_bytes
from cotacao.db import models


def _upload(client, headers, codigo="DES-10", data=None):
    return client.post(
        "/api/gestor/desenhos",
        headers=headers,
        data={"codigo": codigo, "nome": "Flange", "descricao": "Flange 4 furos"},
        files={"file": ("flange.png", data if data is not None else png_bytes(64, 32), "image/png")},
    )


def test_gestor_area_requires_role(client, operador_headers):
    assert client.get("/api/gestor/desenhos").status_code == 401
    res = client.get("/api/gestor/desenhos", headers=operador_headers)
    assert res.status_code == 403
    assert client.get("/api/gestor/dashboard", headers=operador_headers).status_code == 403


def test_upload_desenho_stores_image(client, gestor_headers, tmp_path):
    res = _upload(client, gestor_headers)
    assert res.status_code == 201
    body = res.json()
    assert (body["largura_px"], body["altura_px"]) == (64, 32)
    assert body["archived"] is False
    assert body["imagem_url"].startswith("file://")
    stored = list(Path(tmp_path / "storage" / "desenhos").glob("des-10_*.png"))
    assert len(stored) == 1

    listing = client.get("/api/gestor/desenhos", headers=gestor_headers).json()
    assert [d["codigo"] for d in listing] == ["DES-10"]


def test_upload_rejects_non_image(client, gestor_headers, tmp_path):
    res = _upload(client, gestor_headers, data=b"isto nao e imagem")
    assert res.status_code == 400
    assert not (tmp_path / "storage" / "desenhos").exists()


def test_archive_and_filter(client, gestor_headers, db_session):
    desenho = make_desenho(db_session, "DES-20")
    make_desenho(db_session, "DES-21")
    res = client.patch(f"/api/gestor/desenhos/{desenho.id}", headers=gestor_headers, json={"archived": True})
    assert res.status_code == 200
    assert res.json()["archived"] is True

    ativos = client.get("/api/gestor/desenhos?archived=false", headers=gestor_headers).json()
    arquivados = client.get("/api/gestor/desenhos?archived=true", headers=gestor_headers).json()
    assert [d["codigo"] for d in ativos] == ["DES-21"]
    assert [d["codigo"] for d in arquivados] == ["DES-20"]


def test_cotas_crud(client, gestor_headers, db_session):
    desenho = make_desenho(db_session, "DES-30")
    base = f"/api/gestor/desenhos/{desenho.id}/cotas"

    assert client.get(f"{base}/proxima-etiqueta", headers=gestor_headers).json() == {"etiqueta": "A"}
    first = client.post(
        base,
        headers=gestor_headers,
        json={"nominal": "10,00", "tol_mais": "0,05", "tol_menos": 0.05, "x_percent": 1.5, "y_percent": -2},
    )
    assert first.status_code == 201
    cota = first.json()
    assert cota["etiqueta"] == "A"
    assert cota["spec"] == "10,00mm +0,05 / -0,05"
    assert (cota["x_percent"], cota["y_percent"]) == (1.0, 0.0)
    assert cota["unidade"] == "mm"

    second = client.post(base, headers=gestor_headers, json={"observacao": "furo"})
    assert second.json()["etiqueta"] == "B"
    assert second.json()["spec"] == ""

    duplicate = client.post(base, headers=gestor_headers, json={"etiqueta": "a"})
    assert duplicate.status_code == 409
    invalid = client.post(base, headers=gestor_headers, json={"etiqueta": "C", "nominal": "abc"})
    assert invalid.status_code == 422

    updated = client.patch(
        f"/api/gestor/cotas/{cota['id']}", headers=gestor_headers, json={"tol_mais": "0,10", "unidade": "in"}
    )
    assert updated.json()["spec"] == "10,00in +0,10 / -0,05"

    detail = client.get(f"/api/gestor/desenhos/{desenho.id}", headers=gestor_headers).json()
    assert [c["etiqueta"] for c in detail["cotas"]] == ["A", "B"]

    assert client.delete(f"/api/gestor/cotas/{second.json()['id']}", headers=gestor_headers).status_code == 200
    assert client.get(f"{base}/proxima-etiqueta", headers=gestor_headers).json() == {"etiqueta": "B"}


def test_create_op_with_plan_generates_samples(client, gestor_headers, db_session):
    desenho = make_desenho(db_session, "DES-40", SCENARIO_COTAS)
    res = client.post(
        "/api/gestor/ops",
        headers=gestor_headers,
        json={"codigo": "OP-1", "desenho_id": desenho.id, "qty": 8, "freq": 4},
    )
    assert res.status_code == 201
    op = res.json()
    assert op["status"] == "aberta"
    assert op["params_origem"] == "gestor"

    detail = client.get(f"/api/gestor/ops/{op['id']}", headers=gestor_headers).json()
    assert [a["indice"] for a in detail["amostras"]] == [4, 8]
    assert detail["plano"]["origem"] == "gestor"
    assert detail["totais"] == {"lidos": 0, "esperado": 4, "pct": 0}
    assert detail["desenho"]["codigo"] == "DES-40"

    audit = db_session.query(models.AuditLog).filter(models.AuditLog.action == "OP_CREATE").one()
    assert audit.resource_id == op["id"]


def test_create_op_without_plan(client, gestor_headers, db_session):
    desenho = make_desenho(db_session, "DES-41", SCENARIO_COTAS)
    res = client.post("/api/gestor/ops", headers=gestor_headers, json={"codigo": "OP-2", "desenho_id": desenho.id})
    assert res.status_code == 201
    assert res.json()["params_origem"] is None
    detail = client.get(f"/api/gestor/ops/{res.json()['id']}", headers=gestor_headers).json()
    assert detail["amostras"] == []
    assert detail["plano"] == {
        "qty": None,
        "freq": None,
        "origem": "inferida",
        "qty_inferida": False,
        "freq_inferida": False,
    }


def test_create_op_validation(client, gestor_headers, db_session):
    arquivado = make_desenho(db_session, "DES-42", archived=True)
    res = client.post("/api/gestor/ops", headers=gestor_headers, json={"codigo": "OP-3", "desenho_id": arquivado.id})
    assert res.status_code == 404
    res = client.post(
        "/api/gestor/ops",
        headers=gestor_headers,
        json={"codigo": "OP-3", "desenho_id": arquivado.id, "qty": 0, "freq": 2},
    )
    assert res.status_code == 422


def test_list_ops_and_dashboard(client, gestor_headers, db_session):
    desenho = make_desenho(db_session, "DES-50", SCENARIO_COTAS)
    for codigo in ("OP-A", "OP-B"):
        client.post(
            "/api/gestor/ops",
            headers=gestor_headers,
            json={"codigo": codigo, "desenho_id": desenho.id, "qty": 4, "freq": 2},
        )
    ops = client.get("/api/gestor/ops?status=abertas", headers=gestor_headers).json()
    assert {op["codigo"] for op in ops} == {"OP-A", "OP-B"}
    assert all(op["desenho_codigo"] == "DES-50" and op["progresso_pct"] == 0 for op in ops)
    assert client.get("/api/gestor/ops?status=concluidas", headers=gestor_headers).json() == []
    assert client.get("/api/gestor/ops?status=xyz", headers=gestor_headers).status_code == 422

    dashboard = client.get("/api/gestor/dashboard", headers=gestor_headers).json()
    assert dashboard["desenhos"] == 1
    assert dashboard["ops_abertas"] == 2
    assert dashboard["ops_concluidas_30d"] == 0
    assert len(dashboard["recentes_abertas"]) == 2
    assert dashboard["qualidade"] == {}


def test_delete_referenced_desenho_requires_confirmation(client, gestor_headers, db_session):
    upload = _upload(client, gestor_headers, codigo="DES-60").json()
    op = client.post(
        "/api/gestor/ops", headers=gestor_headers, json={"codigo": "OP-60", "desenho_id": upload["id"]}
    ).json()

    refs = client.get(f"/api/gestor/desenhos/{upload['id']}/referencias", headers=gestor_headers).json()
    assert refs["ops"] == 1

    blocked = client.delete(f"/api/gestor/desenhos/{upload['id']}", headers=gestor_headers)
    assert blocked.status_code == 409
    assert blocked.json()["detail"]["referencias"] == 1

    confirmed = client.delete(f"/api/gestor/desenhos/{upload['id']}?confirmar=true", headers=gestor_headers)
    assert confirmed.status_code == 200
    assert confirmed.json()["ops_desvinculadas"] == 1
    assert confirmed.json()["aviso"] is None

    detail = client.get(f"/api/gestor/ops/{op['id']}", headers=gestor_headers).json()
    assert detail["op"]["desenho_id"] is None
    assert detail["desenho"] is None
    assert client.get(f"/api/gestor/desenhos/{upload['id']}", headers=gestor_headers).status_code == 404


def test_delete_desenho_with_missing_image_returns_warning(client, gestor_headers, db_session):
    desenho = make_desenho(db_session, "DES-61")
    desenho.imagem_path = "desenhos/inexistente.png"
    db_session.commit()
    res = client.delete(f"/api/gestor/desenhos/{desenho.id}", headers=gestor_headers)
    assert res.status_code == 200
    assert res.json()["aviso"]


def test_export_csv_and_delete_op(client, gestor_headers, db_session):
    desenho = make_desenho(db_session, "DES-70", SCENARIO_COTAS)
    op = client.post(
        "/api/gestor/ops",
        headers=gestor_headers,
        json={"codigo": "OP-70", "desenho_id": desenho.id, "qty": 2, "freq": 1},
    ).json()

    res = client.get(f"/api/gestor/ops/{op['id']}/export.csv", headers=gestor_headers)
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert 'filename="OP-70-medicoes.csv"' in res.headers["content-disposition"]
    assert res.content.startswith("\ufeff".encode("utf-8"))

    xlsx = client.get(f"/api/gestor/ops/{op['id']}/export.xlsx", headers=gestor_headers)
    assert xlsx.status_code == 200
    assert 'filename="OP-70-medicoes.xlsx"' in xlsx.headers["content-disposition"]

    assert client.delete(f"/api/gestor/ops/{op['id']}", headers=gestor_headers).status_code == 200
    assert client.get(f"/api/gestor/ops/{op['id']}", headers=gestor_headers).status_code == 404
    db_session.expire_all()
    assert db_session.query(models.Amostra).count() == 0
