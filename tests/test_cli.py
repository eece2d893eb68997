from __future__ import annotations

import json
from unittest.mock import patch

import pytest
import yaml

from difal.cli import _init_config, build_parser, main


@pytest.fixture
def sped_file(tmp_path, sped_bytes):
    path = tmp_path / "efd.txt"
    path.write_bytes(sped_bytes)
    return path


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_calcular_defaults(self):
        args = build_parser().parse_args(["calcular", "efd.txt", "--uf-origem", "PR"])
        assert args.metodologia == "auto"
        assert args.percentual_destinatario == "100"
        assert args.ano is None
        assert not args.memoria

    def test_share_and_year_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(
                ["calcular", "efd.txt", "--uf-origem", "PR", "--ano", "2017", "--percentual-destinatario", "60"]
            )


class TestInit:
    def test_copies_templates(self, config_dir, capsys):
        _init_config()
        assert (config_dir / "benefits.yaml.example").is_file()
        assert (config_dir / "jurisdictions.yaml.example").is_file()
        assert "Próximos passos" in capsys.readouterr().out

    def test_does_not_overwrite(self, config_dir, capsys):
        (config_dir / "benefits.yaml.example").write_text("meu")
        _init_config()
        _init_config()
        out = capsys.readouterr().out
        assert "já existe" in out
        assert "Nenhum arquivo novo criado" in out
        assert (config_dir / "benefits.yaml.example").read_text() == "meu"

    def test_main_dispatches(self):
        with patch("difal.cli._init_config") as mock_init:
            main(["init"])
        mock_init.assert_called_once()


class TestCalcular:
    def test_prints_totals(self, config_dir, sped_file, capsys):
        main(["calcular", str(sped_file), "--uf-origem", "PR"])
        out = capsys.readouterr().out
        assert "EMPRESA TESTE LTDA" in out
        assert "14 total, 13 processadas, 1 ignoradas" in out
        assert "DIFAL:               R$ 84,15" in out
        assert "Total a recolher:    R$ 107,15" in out

    def test_memoria(self, config_dir, sped_file, capsys):
        main(["calcular", str(sped_file), "--uf-origem", "PR", "--memoria"])
        assert "8. DIFAL = max(0, R$ 133,29 - R$ 82,80) = R$ 50,49" in capsys.readouterr().out

    def test_year_share(self, config_dir, sped_file, capsys):
        main(["calcular", str(sped_file), "--uf-origem", "PR", "--ano", "2016"])
        assert "FCP:                 R$ 9,20" in capsys.readouterr().out

    def test_forced_methodology(self, config_dir, sped_file, tmp_path):
        out = tmp_path / "r.json"
        main(["calcular", str(sped_file), "--uf-origem", "PR", "--metodologia", "base-unica", "--json", str(out)])
        data = json.loads(out.read_text(encoding="utf-8"))
        assert {r["metodologia"] for r in data["resultados"]} == {"base-unica"}
        # 690 x 18% - 690 x 12%
        assert data["resultados"][0]["difal"] == "41.40"

    def test_json_output(self, config_dir, sped_file, tmp_path):
        out = tmp_path / "resultado.json"
        main(["calcular", str(sped_file), "--uf-origem", "PR", "--json", str(out)])
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["totais"]["difal"] == "84.15"
        assert len(data["resultados"]) == 2

    def test_uses_stored_benefits(self, config_dir, sped_file, capsys):
        (config_dir / "benefits.yaml").write_text(yaml.safe_dump({"PROD002": {"beneficio": {"tipo": "isencao"}}}))
        main(["calcular", str(sped_file), "--uf-origem", "PR"])
        out = capsys.readouterr().out
        assert "DIFAL:               R$ 50,49" in out
        assert "economia R$ 42,86" in out

    def test_only_with_difal(self, config_dir, sped_file, tmp_path):
        (config_dir / "benefits.yaml").write_text(yaml.safe_dump({"PROD002": {"beneficio": {"tipo": "isencao"}}}))
        out = tmp_path / "r.json"
        main(["calcular", str(sped_file), "--uf-origem", "PR", "--somente-com-difal", "--json", str(out)])
        data = json.loads(out.read_text(encoding="utf-8"))
        assert [r["cod_item"] for r in data["resultados"]] == ["PROD001"]
        assert data["totais"]["total_itens"] == 1

    def test_invalid_uf(self, config_dir, sped_file, capsys):
        with pytest.raises(SystemExit, match="1"):
            main(["calcular", str(sped_file), "--uf-origem", "XX"])
        assert "UF invalida" in capsys.readouterr().out

    def test_missing_file(self, config_dir, tmp_path, capsys):
        with pytest.raises(SystemExit, match="1"):
            main(["calcular", str(tmp_path / "nada.txt"), "--uf-origem", "PR"])
        assert "arquivo não encontrado" in capsys.readouterr().out

    def test_configuration_error(self, config_dir, tmp_path, capsys):
        path = tmp_path / "sem_cabecalho.txt"
        path.write_text("|C001|0|\n")
        with pytest.raises(SystemExit, match="1"):
            main(["calcular", str(path), "--uf-origem", "PR"])
        assert "UF de destino" in capsys.readouterr().out


class TestBeneficio:
    def test_set_and_list(self, config_dir, capsys):
        main(["beneficio", "PROD001", "--tipo", "reducao-base", "--valor", "9"])
        main(["beneficio", "PROD001", "--fcp", "1"])
        main(["beneficio"])
        out = capsys.readouterr().out
        assert "PROD001: Redução de base (carga efetiva 9%); FCP manual 1,00%" in out
        stored = yaml.safe_load((config_dir / "benefits.yaml").read_text())
        assert stored == {"PROD001": {"beneficio": {"tipo": "reducao-base", "valor": "9"}, "fcp": "1"}}

    def test_value_required(self, config_dir, capsys):
        with pytest.raises(SystemExit, match="1"):
            main(["beneficio", "PROD001", "--tipo", "reducao-aliquota-origem"])
        assert "exige --valor" in capsys.readouterr().out

    def test_exemption_needs_no_value(self, config_dir):
        main(["beneficio", "PROD001", "--tipo", "isencao"])
        stored = yaml.safe_load((config_dir / "benefits.yaml").read_text())
        assert stored == {"PROD001": {"beneficio": {"tipo": "isencao"}}}

    def test_invalid_value(self, config_dir, capsys):
        with pytest.raises(SystemExit, match="1"):
            main(["beneficio", "PROD001", "--tipo", "reducao-base", "--valor", "120"])
        assert "entre 0 e 100" in capsys.readouterr().out

    def test_remove(self, config_dir, capsys):
        main(["beneficio", "PROD001", "--tipo", "isencao"])
        main(["beneficio", "PROD001", "--remover"])
        main(["beneficio", "PROD001", "--remover"])
        out = capsys.readouterr().out
        assert "removida" in out
        assert "não possui configuração" in out

    def test_empty_list(self, config_dir, capsys):
        main(["beneficio"])
        assert "Nenhum benefício configurado." in capsys.readouterr().out
