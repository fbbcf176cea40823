from packloop import create_app

app = create_app()
