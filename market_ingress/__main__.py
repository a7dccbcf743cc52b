from market_ingress.main import run

run()
