from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from importlib.resources import files
from pathlib import Path
from typing import TYPE_CHECKING

from difal.utils.formatters import format_brl, format_rate

if TYPE_CHECKING:
    from difal.services.pipeline import AnalysisReport


def _configure_logging(verbose: bool) -> None:
    from difal.config import get_log_level

    level = "DEBUG" if verbose else get_log_level()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def _init_config() -> None:
    """Copy bundled config templates to the user's config directory."""
    from difal.config import get_config_dir

    config_dir = get_config_dir()
    templates = files("difal") / "templates"
    config_dir.mkdir(parents=True, exist_ok=True)

    copied = 0
    for rel in ["benefits.yaml.example", "jurisdictions.yaml.example"]:
        dest = config_dir / rel
        if dest.exists():
            print(f"  já existe: {dest}")
            continue
        src = templates / rel
        with src.open("rb") as f:
            dest.write_bytes(f.read())
        print(f"  criado: {dest}")
        copied += 1

    print()
    print(f"Configuração: {config_dir}")
    print()
    if copied:
        print("Próximos passos:")
        print(f"  1. cp {config_dir / 'benefits.yaml.example'} {config_dir / 'benefits.yaml'}")
        print("  2. Edite benefits.yaml com os benefícios de cada item (opcional)")
        print("  3. Execute: difal-sped calcular ARQUIVO.txt --uf-origem SP")
    else:
        print("Nenhum arquivo novo criado (todos já existiam).")


def _print_report(report: AnalysisReport, show_trail: bool) -> None:
    company = report.company
    if company is not None:
        print(f"Empresa: {company.razao_social} (CNPJ {company.cnpj}) - {company.uf}")
        if company.period_label:
            print(f"Período: {company.period_label}")
    print(
        f"Linhas: {report.lines_total} total, {report.lines_processed} processadas, "
        f"{report.lines_ignored} ignoradas (codificação {report.encoding})"
    )
    print(
        f"Catálogo: {report.catalog_size} itens | Notas: {report.invoice_count} | "
        f"Itens DIFAL: {len(report.results)} "
        f"({report.items_not_in_catalog} fora do catálogo)"
    )
    for warning in report.warnings:
        print(f"  AVISO: {warning}")
    print()

    for r in report.results:
        status = f"ERRO: {r.error}" if r.error else (
            f"DIFAL {format_brl(r.difal)}  FCP {format_brl(r.fcp)}"
        )
        print(
            f"  {r.item.cod_item:<15} CFOP {r.item.cfop}  {r.origin_uf}->{r.destination_uf}  "
            f"base {format_brl(r.base)}  {status}"
        )
        if show_trail:
            for line in r.trail:
                print(f"      {line}")
            print()

    t = report.totals
    print()
    print("Totais")
    print("──────")
    print(f"  Itens:               {t.total_items} ({t.items_with_difal} com DIFAL, {t.items_with_error} com erro)")
    print(f"  Base de cálculo:     {format_brl(t.base)}")
    print(f"  DIFAL:               {format_brl(t.difal)}")
    print(f"  FCP:                 {format_brl(t.fcp)}")
    print(f"  Total a recolher:    {format_brl(t.total_to_collect)}")
    print(f"  Itens com DIFAL:     {format_rate(t.percent_with_difal)}")
    if t.items_with_benefit or t.items_with_fcp_override:
        print(
            f"  Benefícios:          {t.items_with_benefit} itens, "
            f"{t.items_with_fcp_override} com FCP manual, economia {format_brl(t.total_savings)}"
        )


def _calculate(args: argparse.Namespace) -> int:
    from difal.config import load_item_settings, load_jurisdictions
    from difal.models.jurisdiction import Methodology, destination_share_for_year
    from difal.services.difal_engine import calculate_totals, filter_results
    from difal.services.exceptions import DifalError
    from difal.services.pipeline import AnalysisOptions, analyze, read_file
    from difal.utils.validators import validate_percent, validate_uf

    path = Path(args.arquivo)
    if not path.is_file():
        print(f"Erro: arquivo não encontrado: {path}")
        return 1

    try:
        origin = validate_uf(args.uf_origem)
        destination = validate_uf(args.uf_destino) if args.uf_destino else None
        if args.ano is not None:
            share = destination_share_for_year(args.ano)
        else:
            share = validate_percent(args.percentual_destinatario)
        fcp = validate_percent(args.fcp) if args.fcp is not None else None
    except ValueError as e:
        print(f"Erro: {e}")
        return 1

    methodology = None if args.metodologia == "auto" else Methodology(args.metodologia)
    try:
        options = AnalysisOptions(
            origin_uf=origin,
            destination_uf=destination,
            destination_share=share,
            methodology=methodology,
            item_settings=load_item_settings(),
            fcp_override=fcp,
        )
        report = analyze(read_file(path), options, load_jurisdictions())
    except DifalError as e:
        print(f"Erro: {e}")
        return 1

    if args.somente_com_difal:
        results = tuple(filter_results(report.results, only_with_difal=True))
        report = replace(report, results=results, totals=calculate_totals(results))

    _print_report(report, args.memoria)

    if args.json:
        out = Path(args.json)
        out.write_text(json.dumps(report.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        print()
        print(f"Resultado salvo em {out}")
    return 0


def _benefit(args: argparse.Namespace) -> int:
    from difal.config import load_item_settings, remove_item_settings, save_item_settings
    from difal.models.benefit import BENEFIT_TAGS, ItemSettings, benefit_from_dict
    from difal.services.exceptions import ConfigurationError
    from difal.utils.validators import validate_item_code, validate_percent

    try:
        current = load_item_settings()
    except ConfigurationError as e:
        print(f"Erro: {e}")
        return 1

    if args.item is None:
        if not current:
            print("Nenhum benefício configurado.")
        for code, s in sorted(current.items()):
            parts = []
            if s.benefit is not None:
                parts.append(s.benefit.describe())
            if s.fcp_override is not None:
                parts.append(f"FCP manual {format_rate(s.fcp_override)}")
            print(f"  {code}: {'; '.join(parts)}")
        return 0

    try:
        code = validate_item_code(args.item)
    except ValueError as e:
        print(f"Erro: {e}")
        return 1

    if args.remover:
        if remove_item_settings(code):
            print(f"Configuração do item {code} removida.")
        else:
            print(f"Item {code} não possui configuração.")
        return 0

    existing = current.get(code, ItemSettings())
    benefit = existing.benefit
    fcp = existing.fcp_override
    try:
        if args.tipo is not None:
            if args.tipo not in BENEFIT_TAGS:
                raise ValueError(f"Tipo de benefício desconhecido: '{args.tipo}'")
            valor = str(validate_percent(args.valor)) if args.valor is not None else None
            if args.tipo != "isencao" and valor is None:
                raise ValueError(f"O benefício '{args.tipo}' exige --valor")
            benefit = benefit_from_dict({"tipo": args.tipo, "valor": valor})
        if args.fcp is not None:
            fcp = validate_percent(args.fcp)
    except ValueError as e:
        print(f"Erro: {e}")
        return 1

    settings = ItemSettings(benefit=benefit, fcp_override=fcp)
    path = save_item_settings(code, settings)
    print(f"Item {code} atualizado em {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="difal-sped",
        description="Cálculo do DIFAL a partir do SPED EFD ICMS/IPI",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log detalhado")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Cria os arquivos de configuração de exemplo")

    calc = sub.add_parser("calcular", help="Calcula o DIFAL de um arquivo SPED")
    calc.add_argument("arquivo", help="Arquivo SPED EFD (.txt)")
    calc.add_argument("--uf-origem", required=True, help="UF de origem padrão (quando o participante não informa)")
    calc.add_argument("--uf-destino", help="UF de destino (padrão: UF do registro 0000)")
    calc.add_argument(
        "--metodologia",
        choices=["auto", "base-unica", "base-dupla"],
        default="auto",
        help="Força a metodologia (padrão: pela UF de destino)",
    )
    share = calc.add_mutually_exclusive_group()
    share.add_argument("--percentual-destinatario", default="100", help="Partilha do destinatário, %% (padrão 100)")
    share.add_argument("--ano", type=int, help="Usa a partilha da EC 87/2015 para o ano")
    calc.add_argument("--fcp", help="Alíquota de FCP manual para todos os itens, %%")
    calc.add_argument("--memoria", action="store_true", help="Exibe a memória de cálculo de cada item")
    calc.add_argument("--somente-com-difal", action="store_true", help="Lista apenas itens com DIFAL")
    calc.add_argument("--json", metavar="SAIDA", help="Salva o resultado completo em JSON")

    ben = sub.add_parser("beneficio", help="Configura benefício/FCP manual de um item")
    ben.add_argument("item", nargs="?", help="Código do item (sem código: lista as configurações)")
    action = ben.add_mutually_exclusive_group()
    action.add_argument(
        "--tipo",
        choices=["reducao-base", "reducao-aliquota-origem", "reducao-aliquota-destino", "isencao"],
    )
    action.add_argument("--remover", action="store_true", help="Remove a configuração do item")
    ben.add_argument("--valor", help="Parâmetro do benefício, %%")
    ben.add_argument("--fcp", help="Alíquota de FCP manual do item, %%")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the difal-sped CLI."""
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    if args.command == "init":
        _init_config()
        return
    if args.command == "calcular":
        status = _calculate(args)
    else:
        status = _benefit(args)
    if status:
        sys.exit(status)


if __name__ == "__main__":
    main()
