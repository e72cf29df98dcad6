from flask import Blueprint, request, jsonify
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity, get_jwt
from datetime import timedelta

from src.models import User

auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/login', methods=['POST'])
def login():
    """Exchange a user's API key for a JWT."""
    try:
        data = request.get_json(silent=True)
        
        if not data or 'api_key' not in data:
            return jsonify({'error': 'API key is required'}), 400
        
        user = User.query.filter_by(api_key=data['api_key']).first()
        if user is None:
            return jsonify({'error': 'Invalid API key'}), 401
        
        # Create JWT token with 24 hour expiration
        access_token = create_access_token(
            identity=user.id,
            additional_claims={'roles': list(user.roles or [])},
            expires_delta=timedelta(hours=24)
        )
        
        return jsonify({
            'access_token': access_token,
            'token_type': 'Bearer',
            'expires_in': 86400  # 24 hours in seconds
        }), 200
            
    except Exception as e:
        return jsonify({'error': str(e)}), 500


@auth_bp.route('/verify', methods=['GET'])
@jwt_required()
def verify_token():
    """Verify JWT token validity."""
    try:
        current_user = get_jwt_identity()
        return jsonify({
            'message': 'Token is valid',
            'user': current_user,
            'roles': get_jwt().get('roles', [])
        }), 200
    except Exception as e:
        return jsonify({'error': str(e)}), 500


@auth_bp.route('/refresh', methods=['POST'])
@jwt_required()
def refresh_token():
    """Refresh JWT token."""
    try:
        current_user = get_jwt_identity()
        new_token = create_access_token(
            identity=current_user,
            additional_claims={'roles': get_jwt().get('roles', [])},
            expires_delta=timedelta(hours=24)
        )
        
        return jsonify({
            'access_token': new_token,
            'token_type': 'Bearer',
            'expires_in': 86400
        }), 200
    except Exception as e:
        return jsonify({'error': str(e)}), 500
