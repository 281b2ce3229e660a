from almoxarifado import create_app

app = create_app()
