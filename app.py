# app.py
"""
Entrypoint da aplicação.

Uso:
  python app.py migrate --db frota.db
  python app.py template add template.json
  python app.py checklist registrar submissao.json
  python app.py nc listar --status aberta
  python app.py rel conformidade
  python app.py rel kpis
  python app.py rel alertas
"""

from frota.adapters.cli import main

if __name__ == "__main__":
    main()
