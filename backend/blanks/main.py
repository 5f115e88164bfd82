from flask import Blueprint, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from blanks import db
from blanks.cards import get_catalog
from blanks.models import Identity

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the blanks game server!'})

@main.route('/session', methods=['POST'])
def sign_in():
    """Hands out an anonymous identity, or returns the one already held."""
    if current_user.is_authenticated:
        return jsonify(current_user.to_dict())
    identity = Identity()
    db.session.add(identity)
    db.session.commit()
    login_user(identity, remember=True)
    return jsonify(identity.to_dict()), 201

@main.route('/session', methods=['GET'])
@login_required
def check_session():
    return jsonify(current_user.to_dict())

@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})

@main.route('/card-sets')
def list_card_sets():
    sets = sorted(get_catalog().values(), key=lambda s: (not s.official, s.name.lower()))
    return jsonify([s.summary() for s in sets])
