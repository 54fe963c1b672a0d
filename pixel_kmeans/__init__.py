"""
pixel_kmeans - K-Means clustering of image pixels by color and position.

Este paquete agrupa los píxeles de una imagen en K clusters usando K-Means,
con métrica euclidiana simple o ponderada (color + posición).
"""
