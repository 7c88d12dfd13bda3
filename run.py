import asyncio
import json
import os
import sys
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer
import yaml

from labinterop.commons.hl7_engine import HL7Engine
from labinterop.commons.logger import setup_logging
from labinterop.commons.types import Settings
from labinterop.helpers.router import FlowRouter
from labinterop.qc.statistics import compute_statistics
from labinterop.qc.westgard import RULES, evaluate, qc_severity
from labinterop.services.orders_service import OrdersService
from labinterop.services.results_service import ResultsService

app = typer.Typer(add_completion=False, help="Lab interoperability: HL7v2 + Westgard QC")


def resource_path(relative_path: str) -> str:
    """Ruta absoluta a un recurso, ya sea ejecutando como .exe o en desarrollo"""
    if hasattr(sys, "_MEIPASS"):
        # Ejecutable generado por PyInstaller
        base_path = sys._MEIPASS
    else:
        base_path = os.path.dirname(os.path.abspath(__file__))
    return os.path.join(base_path, relative_path)


def load_cfg(path: str = "labinterop/configs/settings.yaml") -> Settings:
    with open(resource_path(path), "r", encoding="utf-8") as f:
        return Settings(**(yaml.safe_load(f) or {}))


def _bootstrap(config: str):
    cfg = load_cfg(config)
    logger = setup_logging(cfg.paths["logs_root"], os.getenv("LOG_LEVEL", "INFO"))
    engine = HL7Engine(cfg.model_dump())
    router = FlowRouter(engine, cfg.model_dump())
    return cfg, logger, engine, router


@app.command()
def parse(file: Path = typer.Argument(..., exists=True, readable=True)):
    """Parsea un archivo HL7 y muestra el registro normalizado (JSON)."""
    engine = HL7Engine()
    payload = engine.parse_and_map(file.read_text(encoding="utf-8"))
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


@app.command()
def validate(file: Path = typer.Argument(..., exists=True, readable=True)):
    """Valida MSH, MSH-9 y MSH-10; código de salida 1 si hay errores."""
    engine = HL7Engine()
    report = engine.validate(engine.parse(file.read_text(encoding="utf-8")))
    typer.echo(json.dumps(report.model_dump(), indent=2))
    if not report.valid:
        raise typer.Exit(code=1)


@app.command()
def send_order(
    config: str = typer.Option("labinterop/configs/settings.yaml", help="settings.yaml"),
):
    """Envía una orden ORM^O01 de ejemplo por el transporte configurado."""
    cfg, logger, _, router = _bootstrap(config)
    logger.info("Iniciando envío de órdenes")
    svc = OrdersService(router, cfg.transport, cfg.paths, cfg.retry)

    # Ejemplo estático: reemplazar por la orden real
    payload = {
        "patient": {
            "id": "123",
            "family_name": "PEREZ",
            "given_name": "JUAN",
            "date_of_birth": "19900101",
            "sex": "M",
        },
        "items": [
            {
                "order_id": "O1",
                "placer_id": "P1",
                "code": "GLU",
                "description": "GLUCOSA",
                "ordered_at": datetime.now(),
            }
        ],
    }
    typer.echo(asyncio.run(svc.send_order(payload)))


@app.command()
def results(
    config: str = typer.Option("labinterop/configs/settings.yaml", help="settings.yaml"),
):
    """Procesa resultados entrantes (carpeta inbox o servidor MLLP)."""
    cfg, logger, _, router = _bootstrap(config)
    logger.info("Iniciando lectura de resultados pendientes por procesar")
    svc = ResultsService(router, cfg.paths)
    results_cfg = cfg.transport["results"]
    if results_cfg.type == "file":
        asyncio.run(svc.run_file_mode(results_cfg.file.get("filename_glob", "*.hl7")))
    else:
        asyncio.run(svc.run_tcp_mode(results_cfg.tcp["host"], int(results_cfg.tcp["port"])))


@app.command()
def qc_evaluate(
    value: float,
    mean: float = typer.Option(..., help="Media objetivo del control"),
    sd: float = typer.Option(..., help="SD objetivo del control"),
    prior: Optional[List[float]] = typer.Option(None, help="Valores previos, del más viejo al más nuevo"),
):
    """Evalúa reglas de Westgard para un valor de control."""
    ev = evaluate(value, mean, sd, prior or [])
    out = {
        "z_score": ev.z_score,
        "violations": [
            {"code": c, "description": RULES[c].description, "class": RULES[c].kind}
            for c in ev.violations
        ],
        "status": ev.status,
        "severity": qc_severity(ev.violations) if ev.violations else None,
    }
    typer.echo(json.dumps(out, indent=2, default=str))


@app.command()
def qc_stats(
    values: List[float],
    target_mean: Optional[float] = typer.Option(None, help="Media asignada por el fabricante"),
    target_sd: Optional[float] = typer.Option(None, help="SD asignada por el fabricante"),
):
    """Estadística descriptiva (media, SD muestral, CV, bias, conteos ±kSD)."""
    stats = compute_statistics(values, target_mean=target_mean, target_sd=target_sd)
    typer.echo(json.dumps(asdict(stats), indent=2, default=str))


if __name__ == "__main__":
    app()
