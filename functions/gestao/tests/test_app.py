import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from gestao.app import create_app
from gestao.config import Settings
from gestao.db import InMemoryEntityStore
from gestao.dependencies import get_store
from gestao.queue import InMemoryJobQueue, QueuedJob
from gestao.types import Entity

ADMIN = {"Authorization": "Bearer admin-token"}
VENDEDOR = {"Authorization": "Bearer vendedor-token"}


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(create_app())
        self.store = get_store()
        if isinstance(self.store, InMemoryEntityStore):
            self.store.reset()
        self.store.create(
            Entity.USER, {"email": "admin@jc.com", "role": "admin", "api_token": "admin-token"}
        )
        self.store.create(
            Entity.USER,
            {
                "email": "vendas@jc.com",
                "role": "user",
                "api_token": "vendedor-token",
                "full_name": "Vendas JC",
            },
        )

    def test_auth_gates(self):
        self.assertEqual(self.client.post("/api/limpar_residuos").status_code, 401)
        self.assertEqual(
            self.client.post("/api/limpar_residuos", headers={"Authorization": "Bearer nope"}).status_code,
            401,
        )
        response = self.client.post("/api/reconciliar_ports", headers=VENDEDOR)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["detail"], "Unauthorized - Admin only")

    def test_port_flow(self):
        response = self.client.post(
            "/api/ports",
            headers=VENDEDOR,
            json={
                "cliente_codigo": "C1",
                "itens_port": [{"numero_pedido_manual": "500", "valor_alocado": 250}],
            },
        )
        self.assertEqual(response.status_code, 201)
        port = response.json()
        self.assertEqual(port["numero_port"], 1001)

        pedido = self.store.create(
            Entity.PEDIDO, {"numero_pedido": 500, "cliente_codigo": "C1", "status": "aberto"}
        )
        reconciled = self.client.post("/api/reconciliar_ports", headers=ADMIN).json()
        self.assertEqual(reconciled["vinculacoes_realizadas"], 1)
        self.assertEqual(self.store.get(Entity.PORT, port["id"])["pedidos_ids"], [pedido["id"]])

        status = self.client.post("/api/atualizar_status_ports", headers=ADMIN).json()
        self.assertEqual(status, {
            "success": True,
            "ports_verificados": 1,
            "ports_atualizados": 1,
            "vinculacoes_realizadas": None,
        })
        self.assertEqual(self.store.get(Entity.PORT, port["id"])["status"], "aguardando_liquidacao")

    def test_port_without_items_is_rejected(self):
        response = self.client.post("/api/ports", headers=VENDEDOR, json={"itens_port": []})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Adicione ao menos um pedido com valor")

    def test_pagamentos_errors(self):
        missing = self.client.post("/api/pedidos/nope/pagamentos", headers=VENDEDOR, json={"valor": 10})
        self.assertEqual(missing.status_code, 404)

        pedido = self.store.create(Entity.PEDIDO, {"status": "pago", "valor_pedido": 10})
        conflict = self.client.post(
            f"/api/pedidos/{pedido['id']}/pagamentos", headers=VENDEDOR, json={"valor": 10}
        )
        self.assertEqual(conflict.status_code, 409)

    def test_non_finite_amounts_are_rejected(self):
        pedido = self.store.create(Entity.PEDIDO, {"status": "aberto", "valor_pedido": 100, "total_pago": 0})
        headers = {**VENDEDOR, "Content-Type": "application/json"}
        for body in ('{"valor": NaN}', '{"valor": Infinity}', '{"valor": -5}'):
            response = self.client.post(
                f"/api/pedidos/{pedido['id']}/pagamentos", headers=headers, content=body
            )
            self.assertEqual(response.status_code, 422)
            self.assertEqual(response.json()["detail"][0]["loc"], ["body", "valor"])
        self.assertEqual(self.store.get(Entity.PEDIDO, pedido["id"])["total_pago"], 0)

        relatorio = self.client.post(
            "/api/gerar_relatorio_comissoes",
            headers=headers,
            content='{"tipo": "geral", "mes_ano": "2026-02", "vales": Infinity}',
        )
        self.assertEqual(relatorio.status_code, 422)

    def test_notifications_endpoints(self):
        bad = self.client.post("/api/criar_notificacao", headers=ADMIN, json={"tipo": "x"})
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(bad.json()["detail"], "Campos obrigatórios faltando")

        created = self.client.post(
            "/api/criar_notificacao",
            headers=ADMIN,
            json={
                "tipo": "aviso",
                "titulo": "Oi",
                "mensagem": "Teste",
                "destinatario_email": "vendas@jc.com",
            },
        )
        self.assertEqual(created.status_code, 200)
        notificacao_id = created.json()["notificacao"]["id"]

        self.assertEqual(
            self.client.post(f"/api/notificacoes/{notificacao_id}/lida", headers=ADMIN).status_code,
            404,
        )
        lida = self.client.post(f"/api/notificacoes/{notificacao_id}/lida", headers=VENDEDOR)
        self.assertTrue(lida.json()["lida"])

        listed = self.client.get("/api/notificacoes", headers=VENDEDOR, params={"nao_lidas": "true"})
        self.assertEqual(listed.json()["notificacoes"], [])

        evento = self.client.post(
            "/api/criar_notificacao_evento",
            headers=VENDEDOR,
            json={"tipo": "t", "titulo": "T", "mensagem": "M"},
        )
        self.assertEqual(evento.json(), {"success": True, "count": 1})

    def test_presence_endpoints(self):
        beat = self.client.post("/api/presenca/heartbeat", headers=VENDEDOR, json={"plataforma": "web"})
        self.assertEqual(beat.json()["status"], "online")
        online = self.client.get("/api/presenca/online", headers=ADMIN).json()["online"]
        self.assertEqual([p["nome"] for p in online], ["Vendas JC"])

        off = self.client.post("/api/presenca/offline", headers=VENDEDOR)
        self.assertEqual(off.json()["status"], "offline")
        self.assertEqual(self.client.get("/api/presenca/online", headers=ADMIN).json()["online"], [])

    def test_atualizar_comissao_actions(self):
        entry = self.store.create(
            Entity.COMMISSION_ENTRY,
            {"valor_base": 100, "percentual": 5, "mes_competencia": "2026-02", "status": "fechado"},
        )
        invalid = self.client.post("/api/atualizar_comissao", headers=ADMIN, json={"action": "apagar"})
        self.assertEqual(invalid.status_code, 400)

        closed = self.client.post(
            "/api/atualizar_comissao",
            headers=ADMIN,
            json={"action": "atualizar_base", "entry_id": entry["id"], "valor_base": 200},
        )
        self.assertEqual(closed.status_code, 409)

        self.store.update(Entity.COMMISSION_ENTRY, entry["id"], {"status": "aberto"})
        not_number = self.client.post(
            "/api/atualizar_comissao",
            headers=ADMIN,
            json={"action": "atualizar_base", "entry_id": entry["id"], "valor_base": "abc"},
        )
        self.assertEqual(not_number.status_code, 400)

        ok = self.client.post(
            "/api/atualizar_comissao",
            headers=ADMIN,
            json={"action": "atualizar_base", "entry_id": entry["id"], "valor_base": 200},
        )
        self.assertEqual(ok.json()["recalculo"]["valor_comissao"], 10.0)

    def test_fechar_mes_follows_permissions(self):
        self.store.create(Entity.COMMISSION_ENTRY, {"mes_competencia": "2026-02", "status": "aberto"})
        denied = self.client.post(
            "/api/comissoes/fechar_mes", headers=VENDEDOR, json={"mes_competencia": "2026-02"}
        )
        self.assertEqual(denied.status_code, 403)

        self.store.create(
            Entity.USER,
            {
                "email": "financeiro@jc.com",
                "role": "user",
                "api_token": "fin-token",
                "permissoes": {"Comissoes": {"fechar": True}},
            },
        )
        closed = self.client.post(
            "/api/comissoes/fechar_mes",
            headers={"Authorization": "Bearer fin-token"},
            json={"mes_competencia": "2026-02"},
        )
        self.assertEqual(closed.status_code, 200)
        self.assertEqual(closed.json()["total"], 1)

        empty = self.client.post(
            "/api/comissoes/fechar_mes", headers=ADMIN, json={"mes_competencia": "2026-02"}
        )
        self.assertEqual(empty.status_code, 400)

    def test_resumo_representante(self):
        self.store.create(
            Entity.PEDIDO,
            {
                "representante_codigo": "R1",
                "status": "pago",
                "mes_pagamento": "1999-01",
                "valor_pedido": 100,
            },
        )
        resumo = self.client.get("/api/comissoes/resumo/R1", headers=VENDEDOR).json()
        self.assertEqual(resumo["qtdPedidos"], 0)
        self.assertEqual(len(resumo["pendentes"]), 1)

    def test_dispatch_runs_job_inline(self):
        self.store.create(
            Entity.PEDIDO,
            {"status": "pago", "total_pago": 100, "saldo_restante": 0, "data_pagamento": "2026-02-10"},
        )
        response = self.client.post("/api/despachar_sincronizacao", headers=ADMIN)
        self.assertEqual(response.status_code, 202)
        payload = response.json()
        self.assertEqual(payload["status"], "accepted")

        job = self.client.get(f"/api/sync_jobs/{payload['job_id']}", headers=ADMIN).json()
        self.assertEqual(job["status"], "concluido")
        self.assertEqual(job["resultado"]["criados"], 1)

    def test_dispatch_without_redis_never_strands_jobs(self):
        settings = Settings(run_jobs_inline=False, redis_url=None)
        queue = InMemoryJobQueue()
        with patch("gestao.routes.get_settings", return_value=settings), patch(
            "gestao.routes.get_queue_client", return_value=queue
        ):
            response = self.client.post("/api/despachar_sincronizacao", headers=ADMIN)
        self.assertEqual(response.status_code, 202)
        self.assertEqual(queue.items, [])
        job = self.store.get(Entity.SYNC_JOB, response.json()["job_id"])
        self.assertEqual(job["status"], "concluido")

    def test_dispatch_with_redis_enqueues_for_worker(self):
        settings = Settings(
            run_jobs_inline=False, redis_url="redis://localhost:6379/0", use_in_memory_backends=False
        )
        queue = InMemoryJobQueue()
        with patch("gestao.routes.get_settings", return_value=settings), patch(
            "gestao.routes.get_queue_client", return_value=queue
        ):
            response = self.client.post("/api/despachar_sincronizacao", headers=ADMIN)
        job_id = response.json()["job_id"]
        self.assertEqual(response.status_code, 202)
        self.assertEqual(queue.items, [QueuedJob("sincronizar_comissoes", job_id)])
        self.assertEqual(self.store.get(Entity.SYNC_JOB, job_id)["status"], "pendente")

    def test_dispatch_conflict_and_unknown_job(self):
        running = self.store.create(
            Entity.SYNC_JOB, {"tipo": "sincronizar_comissoes", "status": "processando"}
        )
        response = self.client.post("/api/despachar_sincronizacao", headers=ADMIN)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["status"], "already_running")
        self.assertEqual(response.json()["job_id"], running["id"])

        self.assertEqual(self.client.get("/api/sync_jobs/nope", headers=ADMIN).status_code, 404)
        self.assertEqual(
            self.client.post("/api/executar_sync_worker", headers=ADMIN, json={}).status_code, 400
        )

    def test_relatorio_pdf(self):
        response = self.client.post(
            "/api/gerar_relatorio_comissoes",
            headers=VENDEDOR,
            json={
                "tipo": "geral",
                "mes_ano": "2026-02",
                "representantes": [{"nome": "Ana", "saldoAPagar": 10.0, "status": "fechado"}],
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], "application/pdf")
        self.assertEqual(
            response.headers["content-disposition"],
            "attachment; filename=comissoes-geral-2026-02.pdf",
        )
        self.assertTrue(response.content.startswith(b"%PDF"))

        invalid = self.client.post(
            "/api/gerar_relatorio_comissoes",
            headers=VENDEDOR,
            json={"tipo": "mensal", "mes_ano": "2026-02"},
        )
        self.assertEqual(invalid.status_code, 400)

    def test_relatorio_analitico_from_store(self):
        self.store.create(Entity.REPRESENTANTE, {"codigo": "R1", "nome": "Ana"})
        self.store.create(
            Entity.COMMISSION_ENTRY,
            {
                "representante_codigo": "R1",
                "mes_competencia": "2026-02",
                "valor_base": 100,
                "percentual": 5,
                "valor_comissao": 5,
                "status": "aberto",
            },
        )
        response = self.client.post(
            "/api/gerar_relatorio_comissoes",
            headers=ADMIN,
            json={"tipo": "analitico", "mes_ano": "2026-02", "representante_codigo": "R1"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.content.startswith(b"%PDF"))

    def test_permissoes_modulos(self):
        response = self.client.get("/api/permissoes/modulos", headers=VENDEDOR)
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(len(payload["modulos"]), 17)
        self.assertIn("fechar", payload["default"]["Comissoes"])

    def test_unexpected_errors_become_500(self):
        client = TestClient(create_app(), raise_server_exceptions=False)
        with patch("gestao.ports.atualizar_status_ports", side_effect=RuntimeError("boom")):
            response = client.post("/api/atualizar_status_ports", headers=ADMIN)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["detail"], "boom")


class SettingsTests(unittest.TestCase):
    def test_env_vars_follow_field_names(self):
        env = {
            "RUN_JOBS_INLINE": "true",
            "REDIS_URL": "redis://cache:6379/1",
            "REDIS_QUEUE_PREFIX": "jc:jobs",
            "LIMITE_RESIDUO": "0.25",
        }
        with patch.dict(os.environ, env):
            settings = Settings()
        self.assertTrue(settings.run_jobs_inline)
        self.assertEqual(settings.redis_url, "redis://cache:6379/1")
        self.assertEqual(settings.redis_queue_prefix, "jc:jobs")
        self.assertEqual(settings.limite_residuo, 0.25)


if __name__ == "__main__":
    unittest.main()
