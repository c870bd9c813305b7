"""
Motor de upsert hacia SQL Server.

Recibe filas tipadas (desordenadas, posiblemente con PK repetidas) y las
reconcilia contra una tabla sin conocer su esquema de antemano.

Flujo de un flush:
- Cache de esquema (descubre PK via catalogo si no esta cacheado o expiro)
- Deduplicacion por PK (gana la ultima ocurrencia)
- Particion en lotes de tamano fijo
- Un MERGE por lote, en secuencia, sobre una sola conexion
"""
