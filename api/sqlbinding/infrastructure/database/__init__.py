"""
Conexion a la base de datos destino.
"""
