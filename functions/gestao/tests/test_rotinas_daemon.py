import unittest
from datetime import date, timedelta
from unittest.mock import patch

from gestao.db import InMemoryEntityStore
from gestao.types import Entity
from scripts import rotinas_daemon


class RotinasDaemonTests(unittest.TestCase):
    def test_run_once_runs_every_routine(self):
        store = InMemoryEntityStore()
        store.create(
            Entity.PEDIDO,
            {"status": "aberto", "valor_pedido": 10, "total_pago": 9.95, "saldo_restante": 0.05},
        )
        store.create(
            Entity.PEDIDO,
            {
                "status": "aberto",
                "saldo_restante": 100,
                "data_entrega": (date.today() - timedelta(days=30)).isoformat(),
            },
        )
        store.create(Entity.USER, {"email": "admin@jc.com", "role": "admin"})

        resultados = rotinas_daemon.run_once(store)
        self.assertEqual(
            list(resultados),
            [
                "limpar_residuos",
                "monitorar_pedidos_atrasados",
                "reconciliar_ports",
                "atualizar_status_ports",
            ],
        )
        self.assertEqual(resultados["limpar_residuos"]["pedidos_limpos"], 1)
        self.assertEqual(resultados["monitorar_pedidos_atrasados"]["notificacoesCriadas"], 1)

    def test_failure_does_not_stop_other_routines(self):
        store = InMemoryEntityStore()

        def quebra(_store):
            raise RuntimeError("boom")

        failing = (("limpar_residuos", quebra),)
        with patch.object(rotinas_daemon, "ROTINAS", failing + rotinas_daemon.ROTINAS[1:]):
            resultados = rotinas_daemon.run_once(store)
        self.assertEqual(resultados["limpar_residuos"], {"success": False, "error": "boom"})
        self.assertTrue(resultados["atualizar_status_ports"]["success"])


if __name__ == "__main__":
    unittest.main()
