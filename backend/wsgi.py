from bizledger import create_app

app = create_app()
