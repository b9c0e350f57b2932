from gestao_acoes.main import app

__all__ = ["app"]
