# app.py
"""
Entrypoint dell'applicazione.

Uso:
  python app.py calcola Pulizia 122 --config medico.json
  python app.py scenari Pulizia 122 --percentuale 40 --percentuale 50
  python app.py valida --strict
  python app.py eccezioni list
  python app.py costi import costi.xlsx --catalogo catalogo_prodotti.xlsx --conferma
"""

from compensi.adapters.cli import main

if __name__ == "__main__":
    main()
