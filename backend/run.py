from cityscore import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # Use SocketIO server so the editor's live compile channel works in dev
    socketio.run(app, debug=True)
