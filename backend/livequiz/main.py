from flask import Blueprint, jsonify

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the livequiz game server!'})

@main.route('/healthz')
def healthz():
    return jsonify({'status': 'ok'})
